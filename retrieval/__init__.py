"""
Similar-prescription retrieval

Components:
- embeddings: turn canonical record text into vectors
- ranking: cosine similarity and top-K ranking
- similar_cases: the retrieval tool composed from the two above and the record store
"""
