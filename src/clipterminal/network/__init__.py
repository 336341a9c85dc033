from clipterminal.network.fetcher import AiohttpFetcher, Fetcher

__all__ = [
    'AiohttpFetcher',
    'Fetcher',
]
