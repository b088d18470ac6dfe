"""
Voice command pipeline.

Realtime flow per utterance: STT -> translate -> completion -> translate back
-> classify -> execute -> telemetry.

- Every utterance runs as its own task; one failing utterance never ends the
  session or leaves the speech stream in an inconsistent state.
- Exactly one telemetry record is attempted per utterance, whatever the outcome.
- All behavior is observable via structured events (see observability.py).
"""
