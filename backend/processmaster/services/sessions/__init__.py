"""Session domain services: phases, scoring, submissions, standings and timers.

Blueprints and socket handlers call into these modules; nothing here
touches the request or socket layer except through emit_session_event.
"""
