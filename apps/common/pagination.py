from django.conf import settings
from rest_framework import serializers


class PageQuerySerializer(serializers.Serializer):
    """Page/limit query params. Defaults are applied before the offset is computed."""

    page = serializers.IntegerField(required=False, min_value=1)
    limit = serializers.IntegerField(required=False, min_value=1)
    search = serializers.CharField(required=False, allow_blank=True, trim_whitespace=True)

    def validate_limit(self, value):
        if value > settings.MAX_PAGE_LIMIT:
            raise serializers.ValidationError(f"limit must be at most {settings.MAX_PAGE_LIMIT}")
        return value

    def validate(self, attrs):
        attrs.setdefault("page", 1)
        attrs.setdefault("limit", settings.PAGE_SIZE)
        return attrs


def page_bounds(page, limit):
    offset = (page - 1) * limit
    return offset, offset + limit


def page_meta(total, page, limit):
    return {"total": total, "page": page, "limit": limit}


def paginate(queryset, page=None, limit=None):
    """Slice ``queryset`` to one page; without a limit the whole queryset is returned."""
    if limit is None:
        return queryset
    offset, end = page_bounds(page or 1, limit)
    return queryset[offset:end]
