"""hid-repair: resumable driver repair for HID/USB input devices.

Core design goals:
- One installer per invocation, reboot in between
- Progress marker is the only state carried across reboots
- Stale device cleanup on every start
- Centralized logging
"""

__all__ = []
