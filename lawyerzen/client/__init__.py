"""
Client-side state for API consumers: theme and preference controllers kept in
sync with the user profile and a local JSON store.
"""
