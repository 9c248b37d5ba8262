"""Face identity: embeddings, similarity, deduplication and match decisions."""
