"""Article discovery for a single website.

The pipeline tries three strategies in order and keeps the first result
that survives URL/domain validation:

- static: JSON-LD and blog-section heuristics over fetched HTML
- rendered: the same idea over a headless-browser DOM snapshot
- agentic: a search-grounded LLM agent (requires GOOGLE_API_KEY)

Example:
    ```python
    from article_scout.shared.config import get_settings
    from article_scout.core.extraction.models import SourceInfo
    from article_scout.core.extraction.orchestrator import ExtractionOrchestrator

    orchestrator = ExtractionOrchestrator(get_settings())
    articles = await orchestrator.run(SourceInfo(url="https://example.com/blog"))
    for article in articles:
        print(article.published_at, article.title, article.url)
    ```

Configuration:
    - STRATEGY_ORDER: strategies in priority order
    - AGENTIC_PRIMARY: try the agent first
    - MAX_ARTICLES_PER_SOURCE: articles returned per run (3 to 5)
    - ENABLE_JAVASCRIPT_RENDERING: enable the rendered strategy
"""
