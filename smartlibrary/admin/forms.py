from wtforms import IntegerField, StringField, TextAreaField
from wtforms.validators import AnyOf, DataRequired, Length, Optional

from ..forms import JsonForm

REQUEST_ACTIONS = ("approve", "decline", "collect")


class BookRequestActionForm(JsonForm):
    request_id = IntegerField(
        "Request ID",
        name="requestId",
        validators=[DataRequired(message="Request ID and action are required")],
    )
    action = StringField(
        "Action",
        validators=[
            DataRequired(message="Request ID and action are required"),
            AnyOf(REQUEST_ACTIONS, message='Action must be one of "approve", "decline" or "collect"'),
        ],
    )


class BookRequestDeleteForm(JsonForm):
    request_id = IntegerField(
        "Request ID",
        name="requestId",
        validators=[DataRequired(message="Request ID is required")],
    )


class EmailSendForm(JsonForm):
    to = StringField("To", validators=[DataRequired(message="Missing required fields"), Length(max=255)])
    subject = StringField("Subject", validators=[DataRequired(message="Missing required fields"), Length(max=500)])
    message = TextAreaField("Message", validators=[DataRequired(message="Missing required fields")])
    type = StringField("Type", validators=[Optional(), Length(max=50)])
