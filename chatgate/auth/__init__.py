"""
Session collaborator for the chat API.

The console's login flows live elsewhere; this package only turns a signed session
cookie into a `ChatUser{id, role}`.
"""
