"""
Tests for seo app - keyword registry, content versions and publishing.
"""
from unittest import mock

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from ai.providers import AIProviderError
from integrations.shopify import ShopifyAPIError
from seo.content_generation import (
    ContentGenerationError,
    fallback_keywords,
    generate_content,
    generate_keywords,
    parse_keyword_lines,
)


@pytest.fixture(autouse=True)
def store_settings(settings):
    settings.SHOPIFY_ENCRYPTION_KEY = '0123456789abcdef' * 4
    settings.APP_URL = 'https://api.example.com'
    settings.KEYWORD_SEED_DELAY_SECONDS = 0
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
    def _create_site(user, shop_domain="mystore.myshopify.com"):
        from sites.models import Site
        site = Site(user=user, name=shop_domain.split('.')[0], shop_domain=shop_domain,
                    store_url=f"https://{shop_domain}")
        site.connect('shpat_test')
        site.save()
        return site
    return _create_site


@pytest.fixture
def create_page():
    def _create_page(site, shopify_id='1', type='PRODUCT', title='Blue Widget', **kwargs):
        from seo.models import Page
        return Page.objects.create(
            site=site, shopify_id=shopify_id, type=type, title=title,
            handle=title.lower().replace(' ', '-'),
            url=f"https://{site.shop_domain}/products/{title.lower().replace(' ', '-')}",
            **kwargs
        )
    return _create_page


class StubProvider:

    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def complete(self, system_prompt, user_prompt, temperature=0.7, max_tokens=2000):
        self.calls.append(user_prompt)
        if self.error:
            raise self.error
        return self.reply


class TestKeywordGeneration:

    def test_parse_strips_numbering_bullets_and_quotes(self):
        text = '1. blue widget\n\n- "sturdy widget"\n3) widget for kids'
        assert parse_keyword_lines(text) == ['blue widget', 'sturdy widget']

    def test_parse_bullet_glyph(self):
        assert parse_keyword_lines('• garden hose') == ['garden hose']

    def test_fallback_for_blue_widget(self):
        keywords = generate_keywords('Blue Widget', provider=StubProvider(error=AIProviderError('down')))
        assert keywords == ['blue widget']

    def test_unexpected_provider_error_falls_back(self):
        keywords = generate_keywords('Blue Widget', provider=StubProvider(error=RuntimeError('upstream down')))
        assert keywords == ['blue widget']

    def test_parse_keeps_leading_numbers_in_phrases(self):
        assert parse_keyword_lines('2.5 inch garden hose\n1. hose reel') == ['2.5 inch garden hose', 'hose reel']

    def test_fallback_uses_first_three_words(self):
        assert fallback_keywords('Large Blue Garden Widget') == ['large blue garden widget', 'large blue garden']

    def test_empty_reply_falls_back(self):
        assert generate_keywords('Blue Widget', provider=StubProvider(reply='\n\n')) == ['blue widget']

    def test_description_truncated(self):
        provider = StubProvider(reply='a\nb')
        generate_keywords('Blue Widget', 'x' * 2000, provider=provider)
        assert 'x' * 500 in provider.calls[0]
        assert 'x' * 501 not in provider.calls[0]


class TestContentGeneration:

    def test_strips_code_fences(self):
        html = generate_content('PRODUCT', 'Blue Widget', 'blue widget',
                                provider=StubProvider(reply='```html\n<p>Great widget</p>\n```'))
        assert html == '<p>Great widget</p>'

    def test_word_ranges(self):
        provider = StubProvider(reply='<p>x</p>')
        generate_content('ARTICLE', 'Widget Care', 'widget care', provider=provider)
        generate_content('COLLECTION', 'Widgets', 'widgets', provider=provider)
        assert '800-1200' in provider.calls[0]
        assert '300-500' in provider.calls[1]

    def test_provider_failure_raises(self):
        with pytest.raises(ContentGenerationError):
            generate_content('PRODUCT', 'Blue Widget', 'blue widget',
                             provider=StubProvider(error=AIProviderError('quota')))

    def test_empty_output_raises(self):
        with pytest.raises(ContentGenerationError):
            generate_content('PRODUCT', 'Blue Widget', 'blue widget', provider=StubProvider(reply='```\n```'))


@pytest.mark.django_db
class TestKeywordRegistry:

    def test_add_keyword_is_insert_if_absent(self, create_user, create_site):
        from seo.keyword_registry import add_keyword
        site = create_site(create_user())

        first, created = add_keyword(site, 'blue widget', 'product:1')
        again, created_again = add_keyword(site, 'blue widget', 'product:2')
        assert created is True
        assert created_again is False
        assert again.pk == first.pk
        assert again.source == 'product:1'

    def test_cap_per_source(self, create_user, create_site):
        from seo.keyword_registry import add_keyword
        from seo.models import Keyword
        site = create_site(create_user())

        add_keyword(site, 'one', 'product:1')
        add_keyword(site, 'two', 'product:1')
        keyword, created = add_keyword(site, 'three', 'product:1')
        assert keyword is None
        assert created is False
        assert Keyword.objects.filter(site=site, source='product:1').count() == 2

    def test_seed_skips_failing_pages(self, create_user, create_site, create_page):
        from seo.keyword_registry import seed_keywords
        site = create_site(create_user())
        create_page(site, shopify_id='1', title='Blue Widget')
        create_page(site, shopify_id='2', title='Red Widget')
        create_page(site, shopify_id='3', type='COLLECTION', title='Widgets')
        create_page(site, shopify_id='4', type='ARTICLE', title='Widget Care')

        client = mock.Mock()
        client.fetch_product_description.side_effect = [RuntimeError('boom'), 'A red widget.']
        result = seed_keywords(site, client=client, provider=StubProvider(reply='kw a\nkw b\nkw c'))

        assert result['pages_processed'] == 3
        assert result['pages_failed'] == 1
        # kw a / kw b belong to the first page that got them; later pages only find existing rows
        assert result['keywords_created'] == 2

    def test_seed_endpoint(self, authenticated_client, create_site, create_page):
        from seo.models import Keyword
        client, user = authenticated_client
        site = create_site(user)
        create_page(site, shopify_id='3', type='COLLECTION', title='Summer Hats')

        with mock.patch('seo.content_generation.get_provider', return_value=StubProvider(error=AIProviderError('x'))):
            response = client.post('/api/v1/keywords/seed/')
        assert response.status_code == 200
        assert response.data['keywords_created'] == 1
        assert Keyword.objects.get(site=site).source == 'collection:3'

    def _legacy_keywords(self, site):
        from seo.models import Keyword
        return [Keyword.objects.create(site=site, keyword=f'kw {i}', source='product:1') for i in range(4)]

    def test_cleanup_dry_run(self, authenticated_client, create_site):
        from seo.models import Keyword
        client, user = authenticated_client
        site = create_site(user)
        self._legacy_keywords(site)

        response = client.post('/api/v1/keywords/cleanup-duplicates/')
        assert response.status_code == 200
        assert response.data['dry_run'] is True
        assert response.data['summary']['total_duplicates'] == 2
        assert response.data['summary']['deleted_count'] == 0
        assert Keyword.objects.filter(site=site).count() == 4

    def test_cleanup_deletes_all_but_two_oldest(self, authenticated_client, create_site):
        from seo.models import Keyword
        client, user = authenticated_client
        site = create_site(user)
        legacy = self._legacy_keywords(site)

        response = client.post('/api/v1/keywords/cleanup-duplicates/?dry_run=false')
        assert response.status_code == 200
        assert response.data['summary']['deleted_count'] == 2
        remaining = set(Keyword.objects.filter(site=site).values_list('pk', flat=True))
        assert remaining == {legacy[0].pk, legacy[1].pk}

    def test_keyword_list(self, authenticated_client, create_site):
        from seo.keyword_registry import add_keyword
        client, user = authenticated_client
        site = create_site(user)
        add_keyword(site, 'blue widget', 'product:1')
        add_keyword(site, 'summer hats', 'collection:3')

        response = client.get('/api/v1/keywords/', {'source': 'product:1'})
        assert response.status_code == 200
        assert response.data['total'] == 1
        assert response.data['keywords'][0]['keyword'] == 'blue widget'
        assert len(response.data['summary']['by_source']) == 2

    def test_keyword_list_without_store(self, authenticated_client):
        client, user = authenticated_client
        response = client.get('/api/v1/keywords/')
        assert response.status_code == 400


@pytest.mark.django_db
class TestContentVersions:

    def test_versions_increment(self, create_user, create_site, create_page):
        from seo.publishing import create_content_version
        page = create_page(create_site(create_user()))

        v1 = create_content_version(page, '<p>one</p>', 'blue widget')
        v2 = create_content_version(page, '<p>two</p>', 'blue widget')
        assert (v1.version, v2.version) == (1, 2)
        assert v1.reason == 'initial_creation'
        assert v2.reason == 'regeneration'
        assert page.content_versions.count() == 2

    def test_generate_endpoint_twice(self, authenticated_client, create_site, create_page):
        client, user = authenticated_client
        page = create_page(create_site(user), type='COLLECTION', title='Widgets')

        with mock.patch('seo.content_generation.get_provider', return_value=StubProvider(reply='<p>hi</p>')):
            first = client.post('/api/v1/content/generate/', {
                'page_id': page.id, 'primary_keyword': 'widgets', 'page_type': 'COLLECTION'})
            second = client.post('/api/v1/content/generate/', {
                'page_id': page.id, 'primary_keyword': 'widgets', 'page_type': 'COLLECTION'})
        assert first.status_code == 200
        assert (first.data['version'], second.data['version']) == (1, 2)

        detail = client.get(f'/api/v1/pages/{page.id}/')
        assert [v['version'] for v in detail.data['content_versions']] == [2, 1]

    def test_generate_fetches_product_description(self, authenticated_client, create_site, create_page):
        client, user = authenticated_client
        page = create_page(create_site(user))
        provider = StubProvider(reply='<p>hi</p>')

        with mock.patch('seo.content_generation.get_provider', return_value=provider), \
                mock.patch('integrations.shopify.ShopifyClient.fetch_product_description',
                           return_value='Hand-made widget'):
            response = client.post('/api/v1/content/generate/', {
                'page_id': page.id, 'primary_keyword': 'blue widget', 'page_type': 'PRODUCT'})
        assert response.status_code == 200
        assert 'Hand-made widget' in provider.calls[0]

    def test_generate_validation(self, authenticated_client, create_site, create_page):
        client, user = authenticated_client
        page = create_page(create_site(user))

        assert client.post('/api/v1/content/generate/', {'page_id': page.id}).status_code == 400
        assert client.post('/api/v1/content/generate/', {
            'page_id': page.id, 'primary_keyword': 'x', 'page_type': 'BLOG'}).status_code == 400
        assert client.post('/api/v1/content/generate/', {
            'page_id': page.id, 'primary_keyword': 'x', 'page_type': 'ARTICLE'}).status_code == 400
        assert client.post('/api/v1/content/generate/', {
            'page_id': 999999, 'primary_keyword': 'x', 'page_type': 'PRODUCT'}).status_code == 404

    def test_generate_other_users_page(self, authenticated_client, create_user, create_site, create_page):
        client, user = authenticated_client
        other = create_site(create_user(email='other@example.com'), shop_domain='other.myshopify.com')
        page = create_page(other)

        response = client.post('/api/v1/content/generate/', {
            'page_id': page.id, 'primary_keyword': 'x', 'page_type': 'PRODUCT'})
        assert response.status_code == 403

    def test_generate_llm_failure(self, authenticated_client, create_site, create_page):
        client, user = authenticated_client
        page = create_page(create_site(user), type='COLLECTION', title='Widgets')

        with mock.patch('seo.content_generation.get_provider',
                        return_value=StubProvider(error=AIProviderError('quota exceeded'))):
            response = client.post('/api/v1/content/generate/', {
                'page_id': page.id, 'primary_keyword': 'widgets', 'page_type': 'COLLECTION'})
        assert response.status_code == 500
        assert 'quota exceeded' in response.data['message']
        assert page.content_versions.count() == 0


@pytest.mark.django_db
class TestPublish:

    def test_no_versions(self, authenticated_client, create_site, create_page):
        client, user = authenticated_client
        page = create_page(create_site(user))

        response = client.post('/api/v1/content/publish/', {'page_id': page.id})
        assert response.status_code == 400
        assert response.data['error'].startswith('No content versions found')

    def test_publish_product(self, authenticated_client, create_site, create_page):
        from seo.publishing import create_content_version
        client, user = authenticated_client
        page = create_page(create_site(user))
        create_content_version(page, '<p>new body</p>', 'blue widget')

        with mock.patch('integrations.shopify.ShopifyClient.update_product_body') as update:
            response = client.post('/api/v1/content/publish/', {'page_id': page.id})
        assert response.status_code == 200
        update.assert_called_once_with('1', '<p>new body</p>')
        assert response.data['version'] == 1
        assert response.data['tracking_enabled'] is True
        page.refresh_from_db()
        assert page.tracking_enabled is True
        assert page.latest_version.published_at is not None

    def test_already_published(self, authenticated_client, create_site, create_page):
        from django.utils import timezone
        from seo.publishing import create_content_version
        client, user = authenticated_client
        page = create_page(create_site(user))
        version = create_content_version(page, '<p>body</p>', 'blue widget')
        version.published_at = timezone.now()
        version.save()

        with mock.patch('integrations.shopify.ShopifyClient.update_product_body') as update:
            response = client.post('/api/v1/content/publish/', {'page_id': page.id})
        assert response.status_code == 400
        assert 'published_at' in response.data
        update.assert_not_called()

    def test_collection_rejected(self, authenticated_client, create_site, create_page):
        from seo.publishing import create_content_version
        client, user = authenticated_client
        page = create_page(create_site(user), type='COLLECTION', title='Widgets')
        create_content_version(page, '<p>body</p>', 'widgets')

        response = client.post('/api/v1/content/publish/', {'page_id': page.id})
        assert response.status_code == 400
        assert 'Collection' in response.data['error']

    def test_disconnected_store(self, authenticated_client, create_site, create_page):
        from seo.publishing import create_content_version
        client, user = authenticated_client
        site = create_site(user)
        page = create_page(site)
        create_content_version(page, '<p>body</p>', 'blue widget')
        site.disconnect()

        response = client.post('/api/v1/content/publish/', {'page_id': page.id})
        assert response.status_code == 400

    def test_article_uses_stored_blog_id(self, create_user, create_site, create_page):
        from seo.publishing import create_content_version, publish_latest_version
        page = create_page(create_site(create_user()), shopify_id='100', type='ARTICLE',
                           title='Widget Care', shopify_blog_id='50')
        create_content_version(page, '<p>article</p>', 'widget care')

        shopify = mock.Mock()
        publish_latest_version(page, client=shopify)
        shopify.find_blog_id_for_article.assert_not_called()
        shopify.update_article_body.assert_called_once_with('50', '100', '<p>article</p>')

    def test_article_blog_not_found(self, create_user, create_site, create_page):
        from seo.publishing import PublishError, create_content_version, publish_latest_version
        page = create_page(create_site(create_user()), shopify_id='100', type='ARTICLE', title='Widget Care')
        create_content_version(page, '<p>article</p>', 'widget care')

        shopify = mock.Mock()
        shopify.find_blog_id_for_article.return_value = None
        with pytest.raises(PublishError) as excinfo:
            publish_latest_version(page, client=shopify)
        assert excinfo.value.status_code == 404

    @pytest.mark.parametrize('status_code, fragment', [
        (403, 'write_products'),
        (404, 'deleted'),
        (429, 'Rate limit'),
        (502, 'Bad Gateway'),
    ])
    def test_upstream_errors_translated(self, authenticated_client, create_site, create_page,
                                        status_code, fragment):
        from seo.publishing import create_content_version
        client, user = authenticated_client
        page = create_page(create_site(user))
        create_content_version(page, '<p>body</p>', 'blue widget')

        error = ShopifyAPIError(status_code, 'Bad Gateway', 'https://mystore.myshopify.com/admin')
        with mock.patch('integrations.shopify.ShopifyClient.update_product_body', side_effect=error):
            response = client.post('/api/v1/content/publish/', {'page_id': page.id})
        assert response.status_code == 500
        assert fragment in response.data['message']
        assert str(status_code) in response.data['details']
        assert page.latest_version.published_at is None


@pytest.mark.django_db
class TestPageList:

    def test_list_with_summary_and_filter(self, authenticated_client, create_site, create_page):
        from seo.publishing import create_content_version
        client, user = authenticated_client
        site = create_site(user)
        product = create_page(site, shopify_id='1', title='Blue Widget')
        create_page(site, shopify_id='2', type='COLLECTION', title='Widgets')
        create_content_version(product, '<p>x</p>', 'blue widget')

        response = client.get('/api/v1/pages/', {'type': 'PRODUCT'})
        assert response.status_code == 200
        assert len(response.data['results']) == 1
        result = response.data['results'][0]
        assert result['content_versions_count'] == 1
        assert result['latest_version']['version'] == 1
        assert response.data['summary']['by_type'] == {'PRODUCT': 1, 'COLLECTION': 1, 'ARTICLE': 0}

    def test_other_users_pages_hidden(self, authenticated_client, create_user, create_site, create_page):
        client, user = authenticated_client
        other = create_site(create_user(email='other@example.com'), shop_domain='other.myshopify.com')
        page = create_page(other)

        assert client.get('/api/v1/pages/').data['results'] == []
        assert client.get(f'/api/v1/pages/{page.id}/').status_code == 404
