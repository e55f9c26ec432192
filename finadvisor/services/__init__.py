"""
Services Module - request orchestration.

- ChatStreamService: streamed chat answers into session transcripts
- InsightService: cached one-shot insights and suggestions
- SessionManager: in-memory transcripts per user session
- ContextBuilder: system prompts around caller-provided context
"""
