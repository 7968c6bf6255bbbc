from .html import FetchClient, HttpFetchClient, extract_text, extract_title, html_to_text

__all__ = ["FetchClient", "HttpFetchClient", "extract_text", "extract_title", "html_to_text"]
