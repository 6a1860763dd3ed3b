"""
Search indexing and query package.

- analyzers: Normalizer pipeline (tokenizer, filters, stemming)
- phrase: bounded-gap phrase matching over position lists
- sqlite_store: SQLite-backed inverted index and link store
- indexer: tokenized documents to postings, batched writes
- query_parser / query_resolver: boolean and phrase query resolution
- cache: bounded LRU used for normalizations and resolved queries
- suggestions: prefix suggestions over the index vocabulary
"""
