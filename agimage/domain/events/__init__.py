"""Domain Event definitions.

Represents significant occurrences within the domain that other parts
of the system might react to. Events are currently dispatched to the
debug log only.
"""
