"""
Per-user interest profile.

Responsibilities:
- Store interest records, the profile location and entities already shown.
- Resolve named interests into signal ids the recommendation service accepts.
- Extract interests from utterances and adjust confidence from feedback.
"""
