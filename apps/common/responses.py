from rest_framework import status
from rest_framework.response import Response


def success_response(data, message, status_code=status.HTTP_200_OK, meta=None):
    body = {"message": message, "data": data}
    if meta is not None:
        body["meta"] = meta
    return Response(body, status=status_code)
