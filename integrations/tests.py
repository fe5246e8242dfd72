"""
Tests for integrations app - Shopify client and catalog sync.
"""
from unittest import mock

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from integrations.shopify import ShopifyAPIError, ShopifyClient, next_page_info


@pytest.fixture(autouse=True)
def store_settings(settings):
    settings.SHOPIFY_ENCRYPTION_KEY = '0123456789abcdef' * 4
    settings.APP_URL = 'https://api.example.com'
    return settings


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def create_user():
    def _create_user(email="test@example.com", password="testpass123"):
        return get_user_model().objects.create_user(
            email=email,
            username=email,
            password=password
        )
    return _create_user


@pytest.fixture
def authenticated_client(api_client, create_user):
    user = create_user()
    refresh = RefreshToken.for_user(user)
    api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {str(refresh.access_token)}')
    return api_client, user


@pytest.fixture
def create_site():
    def _create_site(user, shop_domain="mystore.myshopify.com", token="shpat_test"):
        from sites.models import Site
        site = Site(user=user, name=shop_domain.split('.')[0], shop_domain=shop_domain,
                    store_url=f"https://{shop_domain}")
        site.connect(token)
        site.save()
        return site
    return _create_site


def _response(payload, status_code=200, link=None):
    response = mock.Mock()
    response.status_code = status_code
    response.json.return_value = payload
    response.text = str(payload)
    response.headers = {'Link': link} if link else {}
    return response


def _client(*responses):
    session = mock.Mock()
    session.headers = {}
    session.request.side_effect = list(responses)
    return ShopifyClient('mystore.myshopify.com', 'shpat_test', session=session), session


def _next_link(cursor):
    return f'<https://mystore.myshopify.com/admin/api/2024-10/products.json?limit=250&page_info={cursor}>; rel="next"'


class FakeCatalog:
    """Stands in for ShopifyClient in sync tests."""

    def __init__(self, products=(), collections=(), articles=(), fail_on=None):
        self.products = list(products)
        self.collections = list(collections)
        self.articles = list(articles)
        self.fail_on = fail_on

    def _maybe_fail(self, stage):
        if self.fail_on == stage:
            raise ShopifyAPIError(500, 'boom', f'https://mystore.myshopify.com/{stage}')

    def fetch_products(self):
        self._maybe_fail('products')
        return self.products

    def fetch_collections(self):
        self._maybe_fail('collections')
        return self.collections

    def fetch_articles(self):
        self._maybe_fail('articles')
        return self.articles


CATALOG = dict(
    products=[
        {'id': '1', 'title': 'Blue Widget', 'handle': 'blue-widget', 'updated_at': '2024-05-01T10:00:00-04:00'},
        {'id': '2', 'title': 'Red Widget', 'handle': 'red-widget', 'updated_at': '2024-05-02T10:00:00-04:00'},
    ],
    collections=[{'id': '10', 'title': 'Widgets', 'handle': 'widgets'}],
    articles=[{'id': '100', 'title': 'Widget Care', 'handle': 'widget-care', 'published_at': None,
               'blog_id': '50', 'blog_handle': 'news'}],
)


class TestPagination:

    def test_next_page_info(self):
        assert next_page_info(_next_link('abc%3D')) == 'abc='

    def test_next_page_info_prev_only(self):
        link = '<https://x.myshopify.com/admin/api/2024-10/products.json?page_info=abc>; rel="previous"'
        assert next_page_info(link) is None

    @pytest.mark.parametrize('link', [None, '', 'garbage', '<https://x/products.json>; rel="next"'])
    def test_malformed_link_ends_pagination(self, link):
        assert next_page_info(link) is None

    def test_follows_cursor_and_normalizes_ids(self):
        client, session = _client(
            _response({'products': [{'id': 1, 'title': 'A'}]}, link=_next_link('p2')),
            _response({'products': [{'id': 2, 'title': 'B'}]}),
        )
        products = client.fetch_products()
        assert [p['id'] for p in products] == ['1', '2']
        assert session.request.call_count == 2
        assert session.request.call_args.kwargs['params']['page_info'] == 'p2'
        assert session.headers['X-Shopify-Access-Token'] == 'shpat_test'

    def test_repeated_cursor_stops(self):
        client, session = _client(
            _response({'products': [{'id': 1}]}, link=_next_link('same')),
            _response({'products': [{'id': 2}]}, link=_next_link('same')),
        )
        assert len(client.fetch_products()) == 2
        assert session.request.call_count == 2

    def test_collections_merge_custom_and_smart(self):
        client, session = _client(
            _response({'custom_collections': [{'id': 1}]}),
            _response({'smart_collections': [{'id': 2}]}),
        )
        assert [c['id'] for c in client.fetch_collections()] == ['1', '2']

    def test_articles_annotated_with_blog(self):
        client, session = _client(
            _response({'blogs': [{'id': 5, 'handle': 'news'}]}),
            _response({'articles': [{'id': 9, 'handle': 'hello'}]}),
        )
        article = client.fetch_articles()[0]
        assert article['blog_id'] == '5'
        assert article['blog_handle'] == 'news'

    def test_find_blog_id_for_article(self):
        client, session = _client(
            _response({'blogs': [{'id': 5}, {'id': 6}]}),
            _response({'articles': [{'id': 1}]}),
            _response({'articles': [{'id': 9}]}),
        )
        assert client.find_blog_id_for_article(9) == '6'

    def test_error_status_raises(self):
        client, session = _client(_response({'errors': 'Not Found'}, status_code=404))
        with pytest.raises(ShopifyAPIError) as excinfo:
            client.update_product_body('1', '<p>hi</p>')
        assert excinfo.value.status_code == 404

    def test_product_description_text(self):
        html = '<p>Sturdy   <strong>blue</strong> widget.</p>' + '<p>x</p>' * 600
        client, session = _client(_response({'product': {'body_html': html}}))
        description = client.fetch_product_description('1')
        assert description.startswith('Sturdy blue widget.')
        assert len(description) == 1000

    def test_product_description_failure_is_none(self):
        client, session = _client(_response({}, status_code=500))
        assert client.fetch_product_description('1') is None


@pytest.mark.django_db
class TestCatalogSync:

    def test_sync_creates_pages(self, create_user, create_site):
        from integrations.sync import sync_catalog
        from seo.models import Page
        site = create_site(create_user())

        counts = sync_catalog(site, FakeCatalog(**CATALOG))
        assert counts == {'products': 2, 'collections': 1, 'articles': 1}
        article = Page.objects.get(site=site, type=Page.ARTICLE)
        assert article.url == 'https://mystore.myshopify.com/blogs/news/widget-care'
        assert article.shopify_blog_id == '50'
        assert article.last_updated is not None

    def test_sync_is_idempotent(self, create_user, create_site):
        from integrations.sync import sync_catalog
        from seo.models import Page
        site = create_site(create_user())

        sync_catalog(site, FakeCatalog(**CATALOG))
        sync_catalog(site, FakeCatalog(**CATALOG))
        assert Page.objects.filter(site=site).count() == 4

    def test_sync_never_deletes(self, create_user, create_site):
        from integrations.sync import sync_catalog
        from seo.models import Page
        site = create_site(create_user())

        sync_catalog(site, FakeCatalog(**CATALOG))
        sync_catalog(site, FakeCatalog())
        assert Page.objects.filter(site=site).count() == 4

    def test_stage_failure_keeps_earlier_stages(self, create_user, create_site):
        from integrations.sync import CatalogSyncError, sync_catalog
        from seo.models import Page
        site = create_site(create_user())

        with pytest.raises(CatalogSyncError) as excinfo:
            sync_catalog(site, FakeCatalog(fail_on='collections', **CATALOG))
        assert excinfo.value.stage == 'collections'
        assert excinfo.value.counts == {'products': 2}
        assert isinstance(excinfo.value.__cause__, ShopifyAPIError)
        assert Page.objects.filter(site=site, type=Page.PRODUCT).count() == 2

    def test_sync_endpoint(self, authenticated_client, create_site):
        client, user = authenticated_client
        site = create_site(user)

        with mock.patch('integrations.sync.ShopifyClient', return_value=FakeCatalog(**CATALOG)) as factory:
            response = client.post('/api/v1/store/sync/')
        assert response.status_code == 200
        assert response.data['synced'] == {'products': 2, 'collections': 1, 'articles': 1}
        assert response.data['stored'] == {'products': 2, 'collections': 1, 'articles': 1}
        assert response.data['total'] == 4
        assert factory.call_args.args[1] == 'shpat_test'
        site.refresh_from_db()
        assert site.last_synced_at is not None

    def test_sync_endpoint_stage_failure(self, authenticated_client, create_site):
        client, user = authenticated_client
        create_site(user)

        with mock.patch('integrations.sync.ShopifyClient',
                        return_value=FakeCatalog(fail_on='articles', **CATALOG)):
            response = client.post('/api/v1/store/sync/')
        assert response.status_code == 500
        assert response.data['stage'] == 'articles'
        assert response.data['synced'] == {'products': 2, 'collections': 1}

    def test_sync_endpoint_without_store(self, authenticated_client):
        client, user = authenticated_client
        response = client.post('/api/v1/store/sync/')
        assert response.status_code == 400

    def test_sync_endpoint_disconnected_store(self, authenticated_client, create_site):
        client, user = authenticated_client
        create_site(user).disconnect()
        response = client.post('/api/v1/store/sync/')
        assert response.status_code == 400
