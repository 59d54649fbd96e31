"""
Core download pipeline.

The `DownloadManager` sequences the run, delegating dependency expansion to
the `DependencyExpander`, artifact retrieval to the `ArtifactFetcher` and key
retrieval and signature checks to the `KeyFetcher`.
"""
