from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models.CatalogItem import CatalogItem
from models.ConstructionSite import ConstructionSite
from models.StockMovement import StockMovement, MovementTypeEnum, MovementCategoryEnum
from services import availability
from services.errors import ConcurrentModificationError, InsufficientStockError, LedgerError, NotFoundError
from services.ledger_services import LedgerService
from services.site_inventory_services import SiteInventoryService, INITIAL_REASON

from conftest import ACTOR


def _count(db, balance_id):
    return db.query(StockMovement).filter(StockMovement.site_inventory_id == balance_id).count()


def test_in_then_out_updates_balance_and_ledger(db, make_balance):
    balance = make_balance(quantity=100)
    ledger = LedgerService(db)
    assert _count(db, balance.id) == 1

    ledger.apply_movement(balance.id, MovementTypeEnum.IN, 50, actor=ACTOR, reason="Compra")
    assert ledger.get_balance(balance.id).quantity == Decimal("150")
    assert _count(db, balance.id) == 2

    ledger.apply_movement(balance.id, MovementTypeEnum.OUT, 30, actor=ACTOR, reason="Uso na laje")
    assert ledger.get_balance(balance.id).quantity == Decimal("120")
    assert _count(db, balance.id) == 3
    assert ledger.replay_quantity(balance.id) == Decimal("120")


def test_low_stock_flag_follows_quantity(db, make_balance):
    balance = make_balance(quantity=10, min_threshold=20)
    assert availability.is_low_stock(balance.quantity, balance.min_threshold) is True

    LedgerService(db).apply_movement(balance.id, MovementTypeEnum.IN, 15, actor=ACTOR)
    balance = LedgerService(db).get_balance(balance.id)
    assert balance.quantity == Decimal("25")
    assert availability.is_low_stock(balance.quantity, balance.min_threshold) is False


def test_out_beyond_balance_is_rejected_without_side_effects(db, make_balance):
    balance = make_balance(quantity=5)
    ledger = LedgerService(db)

    with pytest.raises(InsufficientStockError) as exc_info:
        ledger.apply_movement(balance.id, MovementTypeEnum.OUT, 8, actor=ACTOR)

    assert exc_info.value.available == Decimal("5")
    assert exc_info.value.requested == Decimal("8")
    assert ledger.get_balance(balance.id).quantity == Decimal("5")
    assert _count(db, balance.id) == 1


def test_sequence_of_movements_keeps_ledger_consistent_and_non_negative(db, make_balance):
    balance = make_balance(quantity=3)
    ledger = LedgerService(db)
    steps = [
        (MovementTypeEnum.IN, 7),
        (MovementTypeEnum.OUT, 4),
        (MovementTypeEnum.OUT, 9),   # rejected
        (MovementTypeEnum.OUT, 6),
        (MovementTypeEnum.OUT, 1),   # rejected, balance is 0
        (MovementTypeEnum.IN, 2),
    ]
    for movement_type, qty in steps:
        try:
            ledger.apply_movement(balance.id, movement_type, qty, actor=ACTOR)
        except InsufficientStockError:
            pass
        current = ledger.get_balance(balance.id).quantity
        assert current >= 0
        assert ledger.verify_consistency(balance.id)["consistent"] is True

    assert ledger.get_balance(balance.id).quantity == Decimal("2")


def test_movements_record_actor_and_initial_reason(db, make_balance):
    balance = make_balance(quantity=4)
    movement = LedgerService(db).apply_movement(balance.id, MovementTypeEnum.OUT, 1, actor=ACTOR, notes="Bloco B")

    assert movement.actor_id == "42"
    assert movement.actor_name == "Maria Almoxarife"
    assert movement.category == MovementCategoryEnum.GENERIC
    assert movement.notes == "Bloco B"

    movements, total = LedgerService(db).list_movements(balance.id)
    assert total == 2
    assert movements[0].id == movement.id
    assert movements[-1].reason == INITIAL_REASON


def test_listing_movements_has_no_side_effects(db, make_balance):
    balance = make_balance(quantity=10)
    ledger = LedgerService(db)
    ledger.apply_movement(balance.id, MovementTypeEnum.OUT, 2, actor=ACTOR)

    first, _ = ledger.list_movements(balance.id)
    second, _ = ledger.list_movements(balance.id)
    assert [m.id for m in first] == [m.id for m in second]
    assert ledger.get_balance(balance.id).quantity == Decimal("8")


def test_iter_movements_walks_every_page(db, make_balance):
    balance = make_balance(quantity=1)
    ledger = LedgerService(db)
    for _ in range(6):
        ledger.apply_movement(balance.id, MovementTypeEnum.IN, 1, actor=ACTOR)

    ids = [m.id for m in ledger.iter_movements(balance.id, page_size=2)]
    assert len(ids) == 7
    assert len(set(ids)) == 7


def test_unknown_balance_raises_not_found(db):
    with pytest.raises(NotFoundError):
        LedgerService(db).apply_movement(999, MovementTypeEnum.IN, 1, actor=ACTOR)


def test_movements_are_append_only(db, make_balance):
    balance = make_balance(quantity=10)
    movement = db.query(StockMovement).filter(StockMovement.site_inventory_id == balance.id).first()
    movement.quantity = Decimal("999")

    with pytest.raises(ValueError):
        db.flush()
    db.rollback()


def test_quantity_edit_is_booked_as_adjustment(db, make_balance):
    balance = make_balance(quantity=10)
    SiteInventoryService(db).update_item(balance.site_id, balance.id, ACTOR, quantity=7, reason="Inventário físico")

    ledger = LedgerService(db)
    movements, _ = ledger.list_movements(balance.id)
    adjustment = movements[0]
    assert adjustment.category == MovementCategoryEnum.ADJUSTMENT
    assert adjustment.movement_type == MovementTypeEnum.OUT
    assert adjustment.quantity == Decimal("3")
    assert adjustment.reason == "Inventário físico"
    assert ledger.verify_consistency(balance.id)["consistent"] is True


def test_settings_edit_without_quantity_books_nothing(db, make_balance):
    balance = make_balance(quantity=10)
    SiteInventoryService(db).update_item(balance.site_id, balance.id, ACTOR, min_threshold=4)

    assert _count(db, balance.id) == 1
    assert LedgerService(db).get_balance(balance.id).min_threshold == Decimal("4")


def test_quantity_below_stored_scale_is_rejected(db, make_balance):
    balance = make_balance(quantity=5)
    ledger = LedgerService(db)

    with pytest.raises(LedgerError):
        ledger.apply_movement(balance.id, MovementTypeEnum.IN, Decimal("0.00001"), actor=ACTOR)

    assert _count(db, balance.id) == 1
    assert ledger.get_balance(balance.id).quantity == Decimal("5")


def test_quantity_is_rounded_to_stored_scale_before_the_stock_check(db, make_balance):
    balance = make_balance(quantity=Decimal("1.5"))
    ledger = LedgerService(db)

    # 1.50004 persists as 1.5000, which the balance can cover
    movement = ledger.apply_movement(balance.id, MovementTypeEnum.OUT, Decimal("1.50004"), actor=ACTOR)

    assert movement.quantity == Decimal("1.5")
    assert movement.quantity > 0
    assert ledger.get_balance(balance.id).quantity == Decimal("0")
    assert ledger.verify_consistency(balance.id)["consistent"] is True


@pytest.fixture()
def file_sessions(tmp_path):
    """Two independent sessions over one on-disk database, to interleave writers."""
    engine = create_engine(f"sqlite:///{tmp_path / 'ledger.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    setup = factory()
    site = ConstructionSite(name="Obra Concorrente")
    catalog_item = CatalogItem(code="INS-00001", name="Cimento CP-II", unit="saco", category="Material Básico")
    setup.add_all([site, catalog_item])
    setup.commit()
    balance = SiteInventoryService(setup).attach_item(site.id, catalog_item.id, ACTOR, quantity=10)
    balance_id = balance.id
    setup.close()

    first, second = factory(), factory()
    yield first, second, balance_id
    first.close()
    second.close()
    engine.dispose()


def _interfering_fn(first, second, balance_id, interfere_times):
    calls = {"n": 0}

    def _fn(balance):
        calls["n"] += 1
        if calls["n"] <= interfere_times:
            # Another writer commits between our read and our write
            LedgerService(second).apply_movement(balance_id, MovementTypeEnum.IN, 1, actor=ACTOR)
        movement = StockMovement(
            movement_type=MovementTypeEnum.OUT,
            category=MovementCategoryEnum.GENERIC,
            quantity=Decimal("2"),
            actor_id=ACTOR.id,
            actor_name=ACTOR.name,
        )
        return availability.to_decimal(balance.quantity) - Decimal("2"), movement

    return _fn, calls


def test_concurrent_write_is_retried_from_a_fresh_read(file_sessions):
    first, second, balance_id = file_sessions
    fn, calls = _interfering_fn(first, second, balance_id, interfere_times=1)

    balance, movement = LedgerService(first).with_transaction(balance_id, fn)

    assert calls["n"] == 2
    # 10 + 1 from the other writer - 2 from ours
    assert balance.quantity == Decimal("9")
    assert movement.id is not None
    assert LedgerService(first).verify_consistency(balance_id)["consistent"] is True


def test_contention_gives_up_after_max_retries(file_sessions):
    first, second, balance_id = file_sessions
    fn, calls = _interfering_fn(first, second, balance_id, interfere_times=99)

    with pytest.raises(ConcurrentModificationError) as exc_info:
        LedgerService(first, max_retries=3).with_transaction(balance_id, fn)

    assert exc_info.value.attempts == 3
    assert calls["n"] == 3
    ledger = LedgerService(first)
    # Only the three competing INs landed; none of our OUTs did
    assert ledger.get_balance(balance_id).quantity == Decimal("13")
    assert ledger.verify_consistency(balance_id)["consistent"] is True
