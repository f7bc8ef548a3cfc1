"""Branch extract ingestion: adapters, normalization, batching and merge."""
