"""
Repository implementations and infrastructure.

Implementation packages:
- memory: In-memory implementations for testing
- minio: MinIO-based implementations for production
- local: Local file implementations (product catalog)
"""
