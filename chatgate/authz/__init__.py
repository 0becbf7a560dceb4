"""Chat access policy (config driven).

Admins control:
- whether chat is active, in maintenance, or disabled
- which roles / users may use it, and on which days and hours
- which provider the widget talks to
"""
