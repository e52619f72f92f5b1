from rest_framework import serializers


class AmountField(serializers.IntegerField):
    """Whole-unit money amount. Rendered as a string so large values survive JSON clients."""

    def to_representation(self, value):
        if value is None:
            return None
        return str(int(value))


UUID_LOOKUP_REGEX = "[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
