"""
Vendor adapters for the relay (MIE background checks, SMS Portal).

Credentials are never sent by the front-end in normal use; adapters resolve
them per request from environment variables or a local secrets document.
"""
