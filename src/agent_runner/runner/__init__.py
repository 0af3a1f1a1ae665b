"""Session control protocol between the host and the agent engine.

The host talks to this process only through stdin (task descriptor), stdout
(framed result envelopes), stderr (diagnostics) and a shared workspace
directory (follow-up messages, close sentinel, archived transcripts).
"""
