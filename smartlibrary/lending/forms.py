from wtforms import IntegerField, StringField
from wtforms.validators import DataRequired, Length, Optional

from ..forms import JsonForm


class BookRequestForm(JsonForm):
    book_id = IntegerField(
        "Book ID",
        name="bookId",
        validators=[DataRequired(message="Book ID, borrowing days, and user ID are required")],
    )
    borrowing_days = StringField(
        "Borrowing Days",
        name="borrowingDays",
        validators=[DataRequired(message="Book ID, borrowing days, and user ID are required")],
    )
    # Either a numeric member id or an external auth id; the latter is
    # resolved through the email address.
    user_id = StringField(
        "User ID",
        name="userId",
        validators=[DataRequired(message="Book ID, borrowing days, and user ID are required")],
    )
    email = StringField("Email", validators=[Optional(), Length(max=255)])
    name = StringField("Name", validators=[Optional(), Length(max=255)])
