from __future__ import annotations

# Server-assigned message ids are ints; temporary (unconfirmed) ids are strings.
MessageId = int | str
