def handle_request(event, context):
    return event.upper()
