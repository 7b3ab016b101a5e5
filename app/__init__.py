# app/__init__.py
"""Realtime voice relay between browser clients and the OpenAI Realtime API"""

# app/models/__init__.py
"""Relay messages, database models and API schemas"""

# app/managers/__init__.py
"""Relay session components and service managers"""

# app/agents/__init__.py
"""Practice topics and session configuration"""

# app/api/__init__.py
"""REST endpoints and the client WebSocket handler"""

# app/utils/__init__.py
"""Audio helpers"""


"""
Realtime Voice Relay

Pairs each browser WebSocket with one OpenAI Realtime connection, holds
client frames until the upstream session is created, and plays assistant
audio back in order. Finished practice conversations are stored with a
grammar report.
"""

__version__ = "1.0.0"
