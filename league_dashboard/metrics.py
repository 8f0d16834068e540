"""
Prometheus metrics for the catalog client, the enrichment pipeline and the API
"""

from prometheus_client import Counter, Histogram

catalog_api_calls_total = Counter(
    'league_catalog_api_calls_total',
    'Total catalog API calls',
    ['endpoint', 'status']
)

catalog_retries_total = Counter(
    'league_catalog_retries_total',
    'Catalog API retries',
    ['reason']
)

catalog_batches_dropped_total = Counter(
    'league_catalog_batches_dropped_total',
    'Catalog batches dropped after exhausting retries',
    ['endpoint']
)

enrichment_items_total = Counter(
    'league_enrichment_items_total',
    'Items processed by enrichment stage',
    ['stage', 'outcome']
)

enrichment_stage_duration = Histogram(
    'league_enrichment_stage_duration_seconds',
    'Enrichment stage duration',
    ['stage']
)

http_requests_total = Counter(
    'league_http_requests_total',
    'Total HTTP requests',
    ['method', 'route', 'status']
)

http_request_duration = Histogram(
    'league_http_request_duration_seconds',
    'HTTP request duration',
    ['route']
)
