"""
Completion-service integration layer.

Responsibilities:
- Manage Groq API configuration and credentials.
- Answer general questions with the user's profile as context.
- Optionally classify intent when AI routing is switched on.
- Track token usage per session.
- Graceful fallback when the LLM is unavailable or returns invalid output.
"""
