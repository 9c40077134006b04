"""Domain Layer: value objects, entities, events and ports. No I/O here."""
