from fastapi import Request


def strip_port(address: str) -> str:
    address = address.strip()
    if address.startswith("["):
        # [::1]:8080
        return address[1:].split("]", 1)[0]
    if address.count(":") == 1:
        return address.split(":", 1)[0]
    return address


def get_client_ip(request: Request) -> str:
    ip = request.headers.get("X-Forwarded-For", "")
    if ip:
        ip = ip.split(",")[0]
    if not ip.strip():
        ip = request.headers.get("X-Real-IP", "")
    if not ip.strip() and request.client is not None:
        ip = request.client.host or ""
    return strip_port(ip)
