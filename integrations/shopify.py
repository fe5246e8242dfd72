"""
Shopify Admin REST API client.

Covers what the catalog sync and the publisher need: paginated listing of
products, collections and blog articles, and body_html updates.
"""
import logging
import re
from typing import Any, Dict, Iterator, List, Optional
from urllib.parse import unquote

import requests
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = '2024-10'
PAGE_LIMIT = 250
REQUEST_TIMEOUT = 30
DESCRIPTION_MAX_CHARS = 1000

_NEXT_LINK_RE = re.compile(r'<[^>]+page_info=([^&>]+)[^>]*>; rel="next"')


class ShopifyAPIError(Exception):
    """Non-2xx response from the Admin API."""

    def __init__(self, status_code: int, body: str, url: str):
        self.status_code = status_code
        self.body = body
        self.url = url
        super().__init__(f"Shopify API error: {status_code} - {body}")


def next_page_info(link_header: Optional[str]) -> Optional[str]:
    """Cursor for the next page from a Link header, or None."""
    if not link_header:
        return None
    match = _NEXT_LINK_RE.search(link_header)
    if not match:
        return None
    return unquote(match.group(1))


def _normalize_id(item: Dict[str, Any]) -> Dict[str, Any]:
    item['id'] = str(item['id'])
    return item


class ShopifyClient:

    def __init__(self, shop_domain: str, access_token: str, api_version: str = DEFAULT_API_VERSION,
                 session: requests.Session = None):
        self.shop_domain = shop_domain
        self.api_version = api_version
        self.session = session or requests.Session()
        self.session.headers.update({
            'X-Shopify-Access-Token': access_token,
            'Content-Type': 'application/json',
        })

    @property
    def base_url(self) -> str:
        return f"https://{self.shop_domain}/admin/api/{self.api_version}"

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}/{path}"
        response = self.session.request(method, url, timeout=REQUEST_TIMEOUT, **kwargs)
        if not 200 <= response.status_code < 300:
            logger.warning("Shopify %s %s failed: HTTP %s", method, path, response.status_code)
            raise ShopifyAPIError(response.status_code, response.text, url)
        return response

    def _paginate(self, path: str, key: str, fields: Optional[str] = None) -> Iterator[Dict[str, Any]]:
        """
        Yield every item under *key* across all pages.

        Shopify only accepts limit (and fields) alongside page_info, so the
        first request carries the filters and later ones only the cursor.
        """
        params = {'limit': PAGE_LIMIT}
        if fields:
            params['fields'] = fields
        previous = None
        while True:
            response = self._request('GET', path, params=params)
            for item in response.json().get(key, []):
                yield _normalize_id(item)

            page_info = next_page_info(response.headers.get('Link'))
            if not page_info or page_info == previous:
                break
            previous = page_info
            params = {'limit': PAGE_LIMIT, 'page_info': page_info}
            if fields:
                params['fields'] = fields

    def fetch_products(self) -> List[Dict[str, Any]]:
        return list(self._paginate('products.json', 'products', 'id,title,handle,updated_at'))

    def fetch_collections(self) -> List[Dict[str, Any]]:
        """Custom and smart collections, merged."""
        collections = list(self._paginate('custom_collections.json', 'custom_collections', 'id,title,handle'))
        collections.extend(self._paginate('smart_collections.json', 'smart_collections', 'id,title,handle'))
        return collections

    def fetch_blogs(self) -> List[Dict[str, Any]]:
        return list(self._paginate('blogs.json', 'blogs', 'id,handle,title'))

    def fetch_articles(self) -> List[Dict[str, Any]]:
        """Articles from every blog, each annotated with blog_id and blog_handle."""
        articles = []
        for blog in self.fetch_blogs():
            for article in self._paginate(f"blogs/{blog['id']}/articles.json", 'articles',
                                          'id,title,handle,published_at'):
                article['blog_id'] = blog['id']
                article['blog_handle'] = blog.get('handle', '')
                articles.append(article)
        return articles

    def find_blog_id_for_article(self, article_id) -> Optional[str]:
        article_id = str(article_id)
        for blog in self.fetch_blogs():
            for article in self._paginate(f"blogs/{blog['id']}/articles.json", 'articles', 'id'):
                if article['id'] == article_id:
                    return blog['id']
        return None

    def update_product_body(self, product_id, html: str) -> Dict[str, Any]:
        response = self._request('PUT', f"products/{product_id}.json", json={
            'product': {'id': int(product_id), 'body_html': html},
        })
        return response.json().get('product', {})

    def update_article_body(self, blog_id, article_id, html: str) -> Dict[str, Any]:
        response = self._request('PUT', f"blogs/{blog_id}/articles/{article_id}.json", json={
            'article': {'id': int(article_id), 'body_html': html},
        })
        return response.json().get('article', {})

    def fetch_product_description(self, product_id) -> Optional[str]:
        """
        Plain-text product description for prompts, at most 1000 characters.
        Best effort: any failure returns None.
        """
        try:
            response = self._request('GET', f"products/{product_id}.json", params={'fields': 'body_html'})
            body_html = response.json().get('product', {}).get('body_html') or ''
        except (requests.RequestException, ShopifyAPIError, ValueError) as e:
            logger.info("Could not fetch description for product %s: %s", product_id, e)
            return None
        text = ' '.join(BeautifulSoup(body_html, 'html.parser').get_text(' ').split())
        return text[:DESCRIPTION_MAX_CHARS] or None
