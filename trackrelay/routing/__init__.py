"""trackrelay routing — fans events out to all registered destinations.

Destinations are pluggable delivery targets: local JSON-lines files, an
in-memory buffer, the console, or any custom object implementing the
``Destination`` protocol.  The FanOutDispatcher hands each event to every
registered destination and isolates their failures from one another.
"""
