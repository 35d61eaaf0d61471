from fastapi import Request


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def form_value(form, key: str) -> str | None:
    value = form.get(key)
    if value is None:
        return None
    return str(value)
