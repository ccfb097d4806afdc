"""
quillpress - asynchronous content pipeline.

Generates articles with an LLM, uploads their media, narrates them with a
speech provider and keeps read caches consistent, all through durable
Celery queues:
- generation: article text and images
- narration: text-to-speech audio
- image-upload: bulk media upload
- email: outbound mail
"""

__version__ = "0.1.0"
