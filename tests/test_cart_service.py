import pytest
from pydantic import ValidationError as PydanticValidationError

from ordercore.data.models.cart_item import CartItemModel
from ordercore.domain.errors import (
    CatalogError,
    InsufficientInventory,
    ItemNotFound,
    ProductUnavailable,
    ValidationError,
)
from ordercore.domain.schemas import OwnerKey
from ordercore.repos.cart_repo import CartRepo

USER = OwnerKey.for_user(7)
GUEST = OwnerKey.for_session("sess-abc")


def _quantities(cart):
    return {(line.product_id, line.variant_id): line.quantity for line in cart.items}


class TestOwnerKey:
    def test_requires_exactly_one_owner(self):
        with pytest.raises(ValidationError):
            OwnerKey()
        with pytest.raises(ValidationError):
            OwnerKey(user_id=1, session_id="s")

    def test_str(self):
        assert str(USER) == "user:7"
        assert str(GUEST) == "session:sess-abc"
        assert GUEST.is_guest and not USER.is_guest

    def test_is_immutable(self):
        with pytest.raises(PydanticValidationError):
            USER.user_id = 8


class TestGetCart:
    def test_missing_cart_is_empty(self, cart_service):
        for owner in (USER, GUEST):
            cart = cart_service.get_cart(owner)
            assert cart.items == []
            assert cart.item_count == 0
            assert cart.subtotal == 0

    def test_totals(self, cart_service):
        cart_service.add_item(USER, 1, None, 2)
        cart = cart_service.add_item(USER, 2, None, 3)

        assert cart.item_count == 2
        assert cart.total_quantity == 5
        assert cart.subtotal == 2 * 10000 + 3 * 2500


class TestAddItem:
    @pytest.mark.parametrize("owner", [USER, GUEST])
    def test_adding_same_line_sums_quantity(self, cart_service, owner):
        cart_service.add_item(owner, 1, None, 2)
        cart = cart_service.add_item(owner, 1, None, 3)

        assert _quantities(cart) == {(1, None): 5}

    def test_variant_lines_are_separate(self, cart_service):
        cart_service.add_item(USER, 1, None, 1)
        cart = cart_service.add_item(USER, 1, 11, 1)

        assert _quantities(cart) == {(1, None): 1, (1, 11): 1}

    def test_variant_price_overrides_product_price(self, cart_service):
        cart = cart_service.add_item(USER, 1, 11, 1)
        assert cart.items[0].price == 12000

    def test_variant_without_price_uses_product_price(self, cart_service):
        cart = cart_service.add_item(USER, 1, 12, 1)
        assert cart.items[0].price == 10000

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_rejects_non_positive_quantity(self, cart_service, quantity):
        with pytest.raises(ValidationError):
            cart_service.add_item(USER, 1, None, quantity)

    def test_inactive_product(self, cart_service):
        with pytest.raises(ProductUnavailable):
            cart_service.add_item(USER, 4, None, 1)

    def test_unknown_product(self, cart_service):
        with pytest.raises(ProductUnavailable):
            cart_service.add_item(USER, 999, None, 1)

    def test_variant_of_other_product(self, cart_service):
        with pytest.raises(ProductUnavailable):
            cart_service.add_item(USER, 2, 11, 1)

    def test_inventory_checked_against_summed_quantity(self, cart_service):
        cart_service.add_item(USER, 2, None, 4)

        with pytest.raises(InsufficientInventory) as exc:
            cart_service.add_item(USER, 2, None, 2)

        assert exc.value.requested == 6
        assert exc.value.available == 5
        assert _quantities(cart_service.get_cart(USER)) == {(2, None): 4}

    def test_guest_inventory_checked_against_summed_quantity(self, cart_service):
        cart_service.add_item(GUEST, 2, None, 5)
        with pytest.raises(InsufficientInventory):
            cart_service.add_item(GUEST, 2, None, 1)

    def test_variant_inventory(self, cart_service):
        with pytest.raises(InsufficientInventory):
            cart_service.add_item(USER, 1, 12, 2)

    def test_untracked_product_ignores_inventory(self, cart_service):
        cart = cart_service.add_item(USER, 3, None, 50)
        assert _quantities(cart) == {(3, None): 50}

    def test_catalog_outage_surfaces(self, cart_service, catalog):
        catalog.down = True
        with pytest.raises(CatalogError):
            cart_service.add_item(USER, 1, None, 1)

    def test_readding_refreshes_line_price(self, cart_service, catalog):
        cart_service.add_item(USER, 1, None, 1)
        catalog.set_price(1, 9000)

        cart = cart_service.add_item(USER, 1, None, 1)

        assert cart.items[0].price == 9000
        assert cart.subtotal == 18000


class TestSetQuantity:
    @pytest.mark.parametrize("owner", [USER, GUEST])
    def test_sets_quantity(self, cart_service, owner):
        cart_service.add_item(owner, 1, None, 1)
        cart = cart_service.set_item_quantity(owner, 1, None, 4)
        assert _quantities(cart) == {(1, None): 4}

    @pytest.mark.parametrize("owner", [USER, GUEST])
    def test_zero_removes_line(self, cart_service, owner):
        cart_service.add_item(owner, 1, None, 1)
        cart = cart_service.set_item_quantity(owner, 1, None, 0)
        assert cart.items == []

    def test_negative_rejected(self, cart_service):
        with pytest.raises(ValidationError):
            cart_service.set_item_quantity(USER, 1, None, -2)

    @pytest.mark.parametrize("owner", [USER, GUEST])
    def test_missing_line(self, cart_service, owner):
        with pytest.raises(ItemNotFound):
            cart_service.set_item_quantity(owner, 1, None, 2)

    def test_over_stock(self, cart_service):
        cart_service.add_item(USER, 2, None, 1)
        with pytest.raises(InsufficientInventory):
            cart_service.set_item_quantity(USER, 2, None, 6)
        assert _quantities(cart_service.get_cart(USER)) == {(2, None): 1}


class TestRemoveAndClear:
    @pytest.mark.parametrize("owner", [USER, GUEST])
    def test_remove(self, cart_service, owner):
        cart_service.add_item(owner, 1, None, 1)
        cart_service.add_item(owner, 2, None, 1)

        cart = cart_service.remove_item(owner, 1, None)

        assert _quantities(cart) == {(2, None): 1}

    def test_remove_missing_line_is_noop(self, cart_service):
        assert cart_service.remove_item(USER, 1, None).items == []

    @pytest.mark.parametrize("owner", [USER, GUEST])
    def test_clear(self, cart_service, owner):
        cart_service.add_item(owner, 1, None, 1)
        cart_service.clear(owner)
        assert cart_service.get_cart(owner).items == []

    def test_clear_only_touches_own_cart(self, cart_service):
        other = OwnerKey.for_user(8)
        cart_service.add_item(USER, 1, None, 1)
        cart_service.add_item(other, 1, None, 1)

        cart_service.clear(USER)

        assert cart_service.get_cart(other).item_count == 1


class TestMerge:
    def test_merge_sums_quantities_and_empties_guest_cart(self, cart_service):
        cart_service.add_item(USER, 1, None, 1)
        cart_service.add_item(GUEST, 1, None, 2)
        cart_service.add_item(GUEST, 2, None, 1)

        result = cart_service.merge_guest_into_user(GUEST.session_id, USER.user_id)

        assert len(result.merged) == 2
        assert result.skipped == []
        assert _quantities(cart_service.get_cart(USER)) == {(1, None): 3, (2, None): 1}
        assert cart_service.get_cart(GUEST).items == []

    def test_merge_does_not_check_inventory(self, cart_service):
        cart_service.add_item(USER, 2, None, 5)
        cart_service.add_item(GUEST, 2, None, 5)

        cart_service.merge_guest_into_user(GUEST.session_id, USER.user_id)

        assert _quantities(cart_service.get_cart(USER)) == {(2, None): 10}

    def test_merge_empty_guest_cart(self, cart_service):
        result = cart_service.merge_guest_into_user("nobody", USER.user_id)
        assert result.merged == [] and result.skipped == []

    def test_merge_keeps_variant_lines_apart(self, cart_service, db):
        cart_service.add_item(USER, 1, 11, 1)
        cart_service.add_item(GUEST, 1, None, 1)
        cart_service.add_item(GUEST, 1, 11, 1)

        cart_service.merge_guest_into_user(GUEST.session_id, USER.user_id)

        assert _quantities(cart_service.get_cart(USER)) == {(1, 11): 2, (1, None): 1}
        assert db.query(CartItemModel).filter_by(user_id=USER.user_id).count() == 2


@pytest.fixture
def other_session(session_factory):
    """Druga sesja - rownolegly request na tym samym koszyku."""
    session = session_factory()
    yield session
    session.close()


def _commit_line(session, quantity, user_id=USER.user_id, product_id=1, variant_id=11):
    session.add(
        CartItemModel(user_id=user_id, product_id=product_id, variant_id=variant_id,
                      quantity=quantity, price=12000)
    )
    session.commit()


def _interleave(monkeypatch, name, concurrent_write):
    """Podmienia metode CartRepo tak, ze zaraz po jej pierwszym wywolaniu wchodzi rownolegly zapis."""
    original = getattr(CartRepo, name)
    calls = []

    def wrapped(self, *args, **kwargs):
        result = original(self, *args, **kwargs)
        if not calls:
            calls.append(args)
            concurrent_write()
        return result

    monkeypatch.setattr(CartRepo, name, wrapped)
    return calls


class TestConcurrentWrites:
    def test_merge_survives_concurrent_insert_of_same_line(self, cart_service, other_session, monkeypatch):
        cart_service.add_item(GUEST, 1, 11, 2)
        cart_service.add_item(GUEST, 2, None, 1)
        calls = _interleave(monkeypatch, "increment", lambda: _commit_line(other_session, 1))

        result = cart_service.merge_guest_into_user(GUEST.session_id, USER.user_id)

        assert calls
        assert result.skipped == []
        assert len(result.merged) == 2
        assert _quantities(cart_service.get_cart(USER)) == {(1, 11): 3, (2, None): 1}
        assert cart_service.get_cart(GUEST).items == []

    def test_merge_survives_concurrent_increment(self, cart_service, other_session, monkeypatch):
        cart_service.add_item(USER, 1, 11, 1)
        cart_service.add_item(GUEST, 1, 11, 2)
        cart_service.add_item(GUEST, 2, None, 1)

        def bump():
            other_session.query(CartItemModel).filter_by(
                user_id=USER.user_id, product_id=1, variant_id=11
            ).update({"quantity": CartItemModel.quantity + 1})
            other_session.commit()

        _interleave(monkeypatch, "increment", bump)

        result = cart_service.merge_guest_into_user(GUEST.session_id, USER.user_id)

        assert result.skipped == []
        assert _quantities(cart_service.get_cart(USER)) == {(1, 11): 4, (2, None): 1}
        assert cart_service.get_cart(GUEST).items == []

    def test_concurrent_first_add_of_same_line(self, cart_service, other_session, monkeypatch):
        _interleave(monkeypatch, "get_item", lambda: _commit_line(other_session, 1))

        cart = cart_service.add_item(USER, 1, 11, 1)

        assert _quantities(cart) == {(1, 11): 2}

    def test_concurrent_insert_still_checks_inventory_on_sum(self, cart_service, other_session, monkeypatch):
        # wariant 11 ma 3 sztuki
        _interleave(monkeypatch, "get_item", lambda: _commit_line(other_session, 2))

        with pytest.raises(InsufficientInventory):
            cart_service.add_item(USER, 1, 11, 2)

        assert _quantities(cart_service.get_cart(USER)) == {(1, 11): 2}
