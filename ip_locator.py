# ip_locator.py

import logging

import requests

logger = logging.getLogger(__name__)

IP_LOOKUP_URL = "https://api.ipify.org?format=json"
IP_LOOKUP_TIMEOUT = 5

UNKNOWN_IP = "Unknown"
IP_UNAVAILABLE = "IP Unavailable"

# Values that mean no usable external address reached us
LOCAL_ADDRESSES = (UNKNOWN_IP, "::1", "127.0.0.1")

MAPPED_PREFIX = "::ffff:"


def fetch_public_ip(url=IP_LOOKUP_URL, timeout=IP_LOOKUP_TIMEOUT):
    """Ask an IP-echo service for our public address. Returns None on failure."""
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except requests.exceptions.RequestException as e:
        logger.warning("Could not fetch external IP: %s", e)
        return None
    except ValueError as e:
        logger.warning("IP lookup returned invalid JSON: %s", e)
        return None

    ip = data.get("ip") if isinstance(data, dict) else None
    if not ip:
        logger.warning("IP lookup response had no 'ip' field")
        return None
    return str(ip)


def pick_raw_ip(headers, remote_addr):
    """First available of X-Forwarded-For, X-Real-IP, socket address, 'Unknown'."""
    ip = (
        headers.get("X-Forwarded-For")
        or headers.get("X-Real-IP")
        or remote_addr
        or UNKNOWN_IP
    )

    # proxy chains: the first entry is the original client
    if isinstance(ip, (list, tuple)):
        ip = ip[0] if ip else UNKNOWN_IP
    if "," in ip:
        ip = ip.split(",")[0]
    ip = ip.strip() or UNKNOWN_IP

    mapped_at = ip.lower().find(MAPPED_PREFIX)
    if mapped_at != -1:
        ip = ip[mapped_at + len(MAPPED_PREFIX):] or UNKNOWN_IP
    return ip


def resolve_client_ip(headers, remote_addr, lookup=fetch_public_ip):
    """
    Best-effort client IP for a request.

    Falls back to `lookup()` (an external IP-echo call) when only a loopback
    or no address is known. Never raises; returns IP_UNAVAILABLE when the
    lookup fails.
    """
    ip = pick_raw_ip(headers, remote_addr)
    if ip not in LOCAL_ADDRESSES:
        return ip

    try:
        external_ip = lookup()
    except Exception as e:
        logger.warning("External IP lookup raised: %s", e)
        external_ip = None
    return external_ip or IP_UNAVAILABLE
