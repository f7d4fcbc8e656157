"""
FamilyVault - family photo and video sharing client.

Keeps a small PIN-protected roster and a shared media catalog either in a
remote Supabase project or on this device, falling back to local storage
whenever the remote side is unavailable.
"""

__version__ = "0.1.0"
