import json

from uploader.main import handler as _asgi_handler


def handler(event, context):
    # Console/test invocations may carry an already-parsed body
    if isinstance(event, dict) and isinstance(event.get("body"), (dict, list)):
        event = {**event, "body": json.dumps(event["body"]), "isBase64Encoded": False}
    return _asgi_handler(event, context)
