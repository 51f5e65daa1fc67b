from product_assistant.catalog.models import (
    DEFAULT_CATEGORIES,
    DEFAULT_PRICE,
    Product,
    SaleSignal,
    build_snapshot,
    dedupe_products,
    default_snapshot,
    merge_products,
)


def test_product_defaults():
    product = Product(name="Orca")
    assert product.price == DEFAULT_PRICE
    assert not product.has_price
    assert not product.on_sale
    assert product.key == "orca"


def test_nameless_product_keys_on_url():
    assert Product(name="", url="https://x/a").key == "url:https://x/a"
    assert Product(name="").key == ""


def test_merge_keeps_primary_and_fills_gaps():
    primary = Product(name="AirRAM 3", price="£199.99", category="General")
    secondary = Product(
        name="Airram 3",
        price="£249.99",
        original_price="£299.99",
        category="Floorcare",
        specs={"weight": "3kg"},
        features=["Quiet"],
    )
    merged = merge_products(primary, secondary)
    assert (merged.price, merged.original_price) == ("£249.99", "£299.99")
    assert merged.category == "Floorcare"
    assert merged.specs == {"weight": "3kg"}
    assert merged.features == ["Quiet"]
    assert primary.specs == {}


def test_merge_takes_price_pair_from_one_record():
    discounted = Product(name="Orca", price="£99.99", original_price="£129.99")
    listed = Product(name="Orca", price="£119.99")
    kept = merge_products(discounted, listed)
    assert (kept.price, kept.original_price) == ("£99.99", "£129.99")
    plain = merge_products(listed, Product(name="Orca", original_price="£149.99"))
    assert (plain.price, plain.original_price) == ("£119.99", None)
    unpriced = merge_products(Product(name="Orca"), listed)
    assert (unpriced.price, unpriced.original_price) == ("£119.99", None)


def test_dedupe_collapses_normalized_names_in_first_seen_order():
    products = [Product(name="Orca"), Product(name="Koala"), Product(name="ORCA!", price="£99")]
    result = dedupe_products(products)
    assert [product.name for product in result] == ["Orca", "Koala"]
    assert result[0].price == "£99"


def test_build_snapshot_derives_sale_views():
    on_sale = Product(name="AirRAM 3", price="£249.99", original_price="£299.99")
    full_price = Product(name="Orca", price="£129.99")
    promoted = Product(name="Koala", price="£99.99")
    snapshot = build_snapshot(
        [on_sale, full_price, promoted],
        SaleSignal(has_sales=True),
        promotional_keys={promoted.key},
        sections=["Floorcare", "Trending", "floorcare"],
    )
    assert snapshot.sales == [on_sale]
    assert snapshot.promotions == [on_sale, promoted]
    assert snapshot.black_friday == []
    assert snapshot.trending == [on_sale]
    assert snapshot.sections == ["Floorcare", "Trending"]
    assert snapshot.has_sales


def test_black_friday_signal_includes_every_discounted_product():
    sales = [Product(name=f"Item {index}", price="£10", original_price="£20") for index in range(40)]
    snapshot = build_snapshot(sales, SaleSignal(has_sales=True, has_black_friday=True, sale_text="Black Friday"))
    assert snapshot.black_friday == snapshot.sales
    assert len(snapshot.black_friday) == 40


def test_black_friday_products_detected_from_text():
    tagged = Product(name="Orca", price="£99", url="https://x/black-friday/orca")
    snapshot = build_snapshot([tagged], SaleSignal())
    assert snapshot.black_friday == [tagged]
    assert not snapshot.has_black_friday


def test_default_snapshot_carries_categories_only():
    snapshot = default_snapshot()
    assert snapshot.categories == list(DEFAULT_CATEGORIES)
    assert snapshot.products == []
    assert snapshot.is_empty
