"""
Link-graph importance and result ranking.

- link_graph: immutable adjacency built from documents and link edges
- pagerank: power-iteration PageRank with dangling-mass redistribution
- ranker: blended term-relevance + PageRank scoring and pagination
"""
