from tortoise import fields, models


class Setting(models.Model):
    """Operator-controlled runtime toggle, stored as a string value."""

    key = fields.CharField(max_length=100, primary_key=True)
    value = fields.CharField(max_length=255)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "settings"
