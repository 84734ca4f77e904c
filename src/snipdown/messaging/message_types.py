"""Message type tags exchanged between contexts."""

COORDINATOR = "coordinator"
WORKER = "worker"

# Coordinator -> worker
PROCESS_CONTENT = "process-content"
EXTRACT_CONTENT = "extract-content"
CREATE_OBJECT_URL = "create-object-url"
CLEANUP_OBJECT_URL = "cleanup-object-url"

# Worker -> coordinator
MARKDOWN_RESULT = "markdown-result"
ARTICLE_RESULT = "article-result"
PROCESS_ERROR = "process-error"
OBJECT_URL_CREATED = "object-url-created"
OBJECT_URL_ERROR = "object-url-error"

# UI -> coordinator
CLIP = "clip"
CLIP_RESULT = "clip-result"
CLIP_ERROR = "clip-error"
