"""
Keyword registry: which search phrases belong to which catalog page.

Invariants:
  - one row per phrase per site (DB unique constraint; inserts are get_or_create)
  - at most MAX_KEYWORDS_PER_SOURCE rows per source ("product:<id>" / "collection:<id>")
"""
import logging
import time
from collections import OrderedDict

from django.db import transaction

from seo.content_generation import generate_keywords
from seo.models import Keyword, Page

logger = logging.getLogger(__name__)

MAX_KEYWORDS_PER_SOURCE = 2


def keyword_source(page: Page) -> str:
    return f"{page.type.lower()}:{page.shopify_id}"


def add_keyword(site, phrase: str, source: str):
    """
    Insert *phrase* for *site* unless it already exists or *source* is full.

    Returns (keyword, created). keyword is None when the source already holds
    MAX_KEYWORDS_PER_SOURCE phrases.
    """
    phrase = (phrase or '').strip()
    if not phrase:
        return None, False
    with transaction.atomic():
        existing = Keyword.objects.filter(site=site, keyword=phrase).first()
        if existing:
            return existing, False
        if Keyword.objects.filter(site=site, source=source).count() >= MAX_KEYWORDS_PER_SOURCE:
            logger.debug("Source %s already has %d keywords; skipping '%s'", source, MAX_KEYWORDS_PER_SOURCE, phrase)
            return None, False
        return Keyword.objects.get_or_create(site=site, keyword=phrase, defaults={'source': source})


def seed_keywords(site, client=None, provider=None, delay: float = 0.0) -> dict:
    """
    Generate and store keywords for every product and collection page of *site*.

    Product descriptions come from *client* when given. A page that fails is
    logged and skipped. Sleeps *delay* seconds between pages.
    """
    pages = list(Page.objects.filter(site=site, type__in=[Page.PRODUCT, Page.COLLECTION]).order_by('id'))
    created_total = 0
    failed = 0

    for index, page in enumerate(pages):
        if index and delay:
            time.sleep(delay)
        try:
            description = None
            if page.type == Page.PRODUCT and client is not None:
                description = client.fetch_product_description(page.shopify_id)
            source = keyword_source(page)
            for phrase in generate_keywords(page.title, description, provider=provider):
                _, created = add_keyword(site, phrase, source)
                created_total += int(created)
        except Exception as e:
            failed += 1
            logger.warning(f"Keyword seeding failed for page {page.id} ('{page.title}'): {e}")

    logger.info("Seeded %d keywords from %d pages for %s (%d failed)",
                created_total, len(pages), site.shop_domain, failed)
    return {
        'pages_processed': len(pages),
        'keywords_created': created_total,
        'pages_failed': failed,
    }


def find_duplicate_keywords(site, source=None):
    """
    Sources holding more than MAX_KEYWORDS_PER_SOURCE keywords.

    Returns a list of {source, keep, delete} with the oldest keywords kept.
    """
    qs = Keyword.objects.filter(site=site)
    if source:
        qs = qs.filter(source=source)

    by_source = OrderedDict()
    for kw in qs.order_by('source', 'created_at', 'id'):
        by_source.setdefault(kw.source or 'unknown', []).append(kw)

    return [
        {
            'source': src,
            'keep': keywords[:MAX_KEYWORDS_PER_SOURCE],
            'delete': keywords[MAX_KEYWORDS_PER_SOURCE:],
        }
        for src, keywords in by_source.items()
        if len(keywords) > MAX_KEYWORDS_PER_SOURCE
    ]


def cleanup_duplicate_keywords(site, source=None, dry_run=True) -> dict:
    duplicates = find_duplicate_keywords(site, source)
    deleted = []
    if not dry_run:
        with transaction.atomic():
            for dup in duplicates:
                for kw in dup['delete']:
                    deleted.append({'id': kw.id, 'keyword': kw.keyword, 'source': dup['source']})
                Keyword.objects.filter(pk__in=[kw.pk for kw in dup['delete']]).delete()
        logger.info("Deleted %d excess keywords for %s", len(deleted), site.shop_domain)

    return {
        'dry_run': dry_run,
        'summary': {
            'total_keywords': Keyword.objects.filter(site=site).count(),
            'sources_over_limit': len(duplicates),
            'total_duplicates': sum(len(d['delete']) for d in duplicates),
            'deleted_count': len(deleted),
        },
        'duplicates': [
            {
                'source': d['source'],
                'count': len(d['keep']) + len(d['delete']),
                'excess': len(d['delete']),
                'keep': [{'id': kw.id, 'keyword': kw.keyword, 'created_at': kw.created_at} for kw in d['keep']],
                'to_delete': [{'id': kw.id, 'keyword': kw.keyword} for kw in d['delete']],
            }
            for d in duplicates
        ],
        'deleted': deleted,
    }
