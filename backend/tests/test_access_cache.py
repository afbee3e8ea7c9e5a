"""
Access cache tests.

Covers TTL expiry, cascading invalidation down the relation graph, and
agreement between cached and uncached resolution after grant changes.
"""

import pytest

from backoffice.entities import EntityKind
from backoffice.extensions import access_cache
from backoffice.services import access_service
from backoffice.services.access_cache import AccessCache
from backoffice.services.access_resolver import AccessResolver, resolver


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return AccessCache(ttl_seconds=60, clock=clock)


class TestCacheEntries:
    def test_hit_within_ttl(self, cache):
        calls = []

        def compute():
            calls.append(1)
            return {1, 2}

        assert cache.get_or_compute(7, EntityKind.BRAND, compute) == {1, 2}
        assert cache.get_or_compute(7, EntityKind.BRAND, compute) == {1, 2}
        assert len(calls) == 1

    def test_entry_expires_after_ttl(self, cache, clock):
        cache.get_or_compute(7, EntityKind.BRAND, lambda: {1})
        clock.advance(61)

        assert cache.get(7, EntityKind.BRAND) is None
        assert len(cache) == 0

    def test_zero_ttl_disables_caching(self, clock):
        cache = AccessCache(ttl_seconds=0, clock=clock)
        cache.get_or_compute(7, EntityKind.BRAND, lambda: {1})

        assert cache.get(7, EntityKind.BRAND) is None
        assert len(cache) == 0

    def test_disabled_kind_is_never_stored(self, clock):
        cache = AccessCache(ttl_seconds=60, disabled_kinds=["order"], clock=clock)
        cache.get_or_compute(7, EntityKind.ORDER, lambda: {1})
        cache.get_or_compute(7, EntityKind.BRAND, lambda: {1})

        assert cache.get(7, EntityKind.ORDER) is None
        assert cache.get(7, EntityKind.BRAND) == {1}

    def test_result_discarded_when_invalidated_during_compute(self, cache):
        def compute():
            # a grant change lands while the set is being computed
            cache.invalidate(7, EntityKind.BRAND)
            return {1}

        assert cache.get_or_compute(7, EntityKind.BRAND, compute) == {1}
        assert cache.get(7, EntityKind.BRAND) is None


class TestInvalidation:
    def _fill(self, cache, user_id):
        for kind in EntityKind:
            cache.get_or_compute(user_id, kind, lambda: {1})

    def test_brand_invalidation_cascades_to_descendants(self, cache):
        self._fill(cache, 7)

        cache.invalidate(7, EntityKind.BRAND)

        for kind in EntityKind:
            assert cache.get(7, kind) is None

    def test_product_item_invalidation_keeps_ancestors(self, cache):
        self._fill(cache, 7)

        cache.invalidate(7, EntityKind.PRODUCT_ITEM)

        assert cache.get(7, EntityKind.PRODUCT_ITEM) is None
        assert cache.get(7, EntityKind.ORDER_ITEM) is None
        assert cache.get(7, EntityKind.PRODUCT) == {1}
        assert cache.get(7, EntityKind.BRAND) == {1}
        assert cache.get(7, EntityKind.EXPENSE) == {1}

    def test_user_invalidation_leaves_other_users(self, cache):
        self._fill(cache, 7)
        self._fill(cache, 8)

        cache.invalidate(7)

        assert cache.get(7, EntityKind.BRAND) is None
        assert cache.get(8, EntityKind.BRAND) == {1}

    def test_invalidate_all(self, cache):
        self._fill(cache, 7)
        self._fill(cache, 8)

        cache.invalidate_all()

        assert len(cache) == 0


class TestCoherenceWithGrants:
    """Cached resolution must match a fresh computation after every grant change."""

    @pytest.fixture
    def uncached(self):
        return AccessResolver(cache=None)

    def _assert_agree(self, user, uncached):
        for kind in EntityKind:
            assert resolver.resolve(user, kind) == uncached.resolve(user, kind), kind

    def test_grant_and_revoke_sequence(self, db_session, catalog, viewer_user, uncached):
        self._assert_agree(viewer_user, uncached)

        brand_grant = access_service.grant_access(
            user_id=viewer_user.id, entity_type=EntityKind.BRAND, entity_id=catalog["brand_a"].id,
        )
        self._assert_agree(viewer_user, uncached)

        access_service.grant_access(
            user_id=viewer_user.id, entity_type=EntityKind.PRODUCT_ITEM, entity_id=catalog["item_b"].id,
        )
        self._assert_agree(viewer_user, uncached)
        assert catalog["order_item_b"].id in resolver.resolve(viewer_user, EntityKind.ORDER_ITEM)

        access_service.revoke_access(grant_id=brand_grant.id)
        self._assert_agree(viewer_user, uncached)
        assert resolver.resolve(viewer_user, EntityKind.PRODUCT) == frozenset()

    def test_rolled_back_grant_leaves_no_stale_entry(self, db_session, catalog, viewer_user, uncached):
        from backoffice.models import AccessGrant

        assert resolver.resolve(viewer_user, EntityKind.BRAND) == frozenset()

        db_session.add(AccessGrant(user_id=viewer_user.id, entity_type=EntityKind.BRAND,
                                   entity_id=catalog["brand_a"].id))
        db_session.flush()
        # the flushed grant is visible inside the transaction
        assert resolver.resolve(viewer_user, EntityKind.BRAND) == {catalog["brand_a"].id}
        db_session.rollback()

        self._assert_agree(viewer_user, uncached)
        assert resolver.resolve(viewer_user, EntityKind.BRAND) == frozenset()

    def test_module_cache_is_populated_by_resolver(self, db_session, catalog, viewer_user):
        access_service.grant_access(
            user_id=viewer_user.id, entity_type=EntityKind.BRAND, entity_id=catalog["brand_a"].id,
        )
        resolver.resolve(viewer_user, EntityKind.PRODUCT)

        assert access_cache.get(viewer_user.id, EntityKind.PRODUCT) == {catalog["product_a"].id}
        assert access_cache.get(viewer_user.id, EntityKind.BRAND) == {catalog["brand_a"].id}
