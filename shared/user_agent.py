"""
Best-effort User-Agent parsing into session device labels.

Parsing accuracy is not a correctness property: anything unrecognised falls
back to "Unknown ..." labels. SessionService accepts any callable with the
signature of parse_user_agent(), so the parser can be swapped out.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ua_parser import parse


@dataclass(frozen=True)
class DeviceInfo:
    device: str = "Unknown Device"
    browser: str = "Unknown Browser"
    os: str = "Unknown OS"
    user_agent: Optional[str] = None


def _version(*parts: Optional[str]) -> str:
    return ".".join(p for p in parts if p)


def _known(family: Optional[str]) -> bool:
    return bool(family) and family != "Other"


def parse_user_agent(user_agent: Optional[str]) -> DeviceInfo:
    """Derive device, browser and OS labels from a ``User-Agent`` header.

    Examples of produced labels: ``"Apple iPhone"``, ``"Chrome 120.0"``,
    ``"Mac OS X 10.15"``.
    """
    if not user_agent:
        return DeviceInfo()

    result = parse(user_agent)
    browser_ua, os_info, device = result.user_agent, result.os, result.device

    os_name = "Unknown OS"
    if os_info is not None and _known(os_info.family):
        version = _version(os_info.major, os_info.minor)
        os_name = f"{os_info.family} {version}" if version else os_info.family

    browser = "Unknown Browser"
    if browser_ua is not None and _known(browser_ua.family):
        version = _version(browser_ua.major, browser_ua.minor)
        browser = f"{browser_ua.family} {version}" if version else browser_ua.family

    if device is not None and device.brand and device.model:
        device_name = f"{device.brand} {device.model}"
    elif device is not None and device.model:
        device_name = device.model
    elif device is not None and _known(device.family):
        device_name = device.family
    elif os_info is not None and _known(os_info.family):
        device_name = f"{os_info.family} Device"
    else:
        device_name = "Unknown Device"

    return DeviceInfo(
        device=device_name, browser=browser, os=os_name, user_agent=user_agent
    )
