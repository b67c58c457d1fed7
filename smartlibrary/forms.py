from flask import request
from flask_wtf import FlaskForm
from werkzeug.datastructures import ImmutableMultiDict

_SCALAR_TYPES = (str, int, float)


def json_formdata():
    """Flatten a JSON object body into form data WTForms can process.

    Scalars are passed on as strings, the way a browser form would send them;
    nulls, booleans, lists and nested objects are dropped.
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return ImmutableMultiDict()
    return ImmutableMultiDict(
        {
            key: str(value)
            for key, value in payload.items()
            if isinstance(value, _SCALAR_TYPES) and not isinstance(value, bool)
        }
    )


class JsonForm(FlaskForm):
    """Form bound to the JSON request body. Token-authenticated, so no CSRF."""

    class Meta:
        csrf = False

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("formdata", json_formdata())
        super().__init__(*args, **kwargs)

    def first_error(self):
        for field_errors in self.errors.values():
            if field_errors:
                return field_errors[0]
        return "Invalid request"
