from __future__ import annotations

import io
import unittest
from contextlib import redirect_stderr
from unittest.mock import Mock

from restock_monitor.errors import FetchError, ParseError
from restock_monitor.http_client import FetchResult
from restock_monitor.source import (
    EspaceDesMarquesSource,
    decode_variants,
    extract_product_id,
    is_site_url,
    parse_product_page,
)


PRODUCT_HTML = """
<html><head>
<title>Veste de ski | Espace des marques</title>
<meta property="og:image" content="https://cdn.example.test/og.jpg">
<script type="application/ld+json">
[{"@type": "BreadcrumbList", "itemListElement": []},
 {"@type": "Product", "name": "Veste de ski noire", "brand": {"@type": "Brand", "name": "O'Neill"},
  "image": ["https://cdn.example.test/1.jpg", "https://cdn.example.test/2.jpg"],
  "offers": {"@type": "Offer", "price": "89.90", "availability": "https://schema.org/InStock"}}]
</script>
</head><body>
<span class="product-price">89,90 €</span>
<span class="price original-price">179,00 €</span>
<div class="product-variants" data-variants="[{&quot;labelAddCart&quot;:&quot;M&quot;,&quot;hasStock&quot;:true,&quot;labelStock&quot;:&quot;3 en stock&quot;,&quot;codeAlerting&quot;:&quot;V-M&quot;},{&quot;labelAddCart&quot;:&quot;L&quot;,&quot;hasStock&quot;:false,&quot;labelStock&quot;:&quot;&#201;puis&#233;&quot;,&quot;actionAddCart&quot;:&quot;add-L&quot;}]"></div>
</body></html>
"""

FALLBACK_HTML = """
<html><head>
<title>Pantalon de ski | Espace des marques</title>
<meta property="og:image" content="https://cdn.example.test/og.jpg">
</head><body>
<div class="product-price">  59,00 € </div>
</body></html>
"""

URL = "https://www.espace-des-marques.com/fr/116527/pantalon-de-ski-noir-femme"


class TestParseProductPage(unittest.TestCase):
    def test_reads_json_ld_and_variants(self) -> None:
        snap = parse_product_page(PRODUCT_HTML)

        self.assertEqual(snap.title, "Veste de ski noire")
        self.assertEqual(snap.brand, "O'Neill")
        self.assertEqual(snap.price, "89.90")
        self.assertEqual(snap.original_price, "179,00 €")
        self.assertEqual(snap.image_url, "https://cdn.example.test/1.jpg")
        self.assertEqual(snap.availability, "https://schema.org/InStock")

        self.assertEqual(set(snap.sizes), {"M", "L"})
        self.assertTrue(snap.sizes["M"].in_stock)
        self.assertEqual(snap.sizes["M"].stock_label, "3 en stock")
        self.assertEqual(snap.sizes["M"].variant_code, "V-M")
        self.assertFalse(snap.sizes["L"].in_stock)
        self.assertEqual(snap.sizes["L"].stock_label, "Épuisé")
        self.assertEqual(snap.sizes["L"].variant_code, "add-L")

    def test_falls_back_to_html_fields(self) -> None:
        snap = parse_product_page(FALLBACK_HTML)

        self.assertEqual(snap.title, "Pantalon de ski")
        self.assertEqual(snap.brand, "")
        self.assertEqual(snap.price, "59,00 €")
        self.assertEqual(snap.image_url, "https://cdn.example.test/og.jpg")
        self.assertEqual(snap.sizes, {})

    def test_malformed_variants_give_empty_sizes(self) -> None:
        html = '<html><head><title>X</title></head><body><div data-variants="{not json"></div></body></html>'
        buf = io.StringIO()
        with redirect_stderr(buf):
            snap = parse_product_page(html)
        self.assertEqual(snap.sizes, {})
        self.assertIn("could not parse variants", buf.getvalue())

    def test_page_without_title_is_unknown_product(self) -> None:
        self.assertEqual(parse_product_page("<html><body></body></html>").title, "Unknown Product")

    def test_product_block_wins_over_earlier_json_ld(self) -> None:
        html = """
<html><head>
<script type="application/ld+json">{"@type": "Organization", "name": "Espace des Marques"}</script>
<script type="application/ld+json">
[{"@type": "Product", "name": "Veste ski", "brand": {"name": "Rossignol"}, "offers": {"price": "120.00"}}]
</script>
</head><body></body></html>
"""
        snap = parse_product_page(html)

        self.assertEqual(snap.title, "Veste ski")
        self.assertEqual(snap.brand, "Rossignol")
        self.assertEqual(snap.price, "120.00")

    def test_first_json_ld_object_used_without_product(self) -> None:
        html = '<html><head><script type="application/ld+json">{"name": "Sac a dos"}</script></head></html>'
        self.assertEqual(parse_product_page(html).title, "Sac a dos")


class TestDecodeVariants(unittest.TestCase):
    def test_rejects_non_list_payload(self) -> None:
        with self.assertRaises(ParseError):
            decode_variants('{"labelAddCart": "M"}')

    def test_missing_label_and_non_boolean_stock(self) -> None:
        sizes = decode_variants('[{"hasStock": "true"}, "junk"]')
        self.assertEqual(list(sizes), ["Unknown"])
        self.assertFalse(sizes["Unknown"].in_stock)


class TestProductUrls(unittest.TestCase):
    def test_extract_product_id(self) -> None:
        self.assertEqual(extract_product_id(URL), "116527")
        self.assertIsNone(extract_product_id("https://www.espace-des-marques.com/fr/soldes"))
        self.assertIsNone(extract_product_id(""))

    def test_is_site_url(self) -> None:
        self.assertTrue(is_site_url(URL))
        self.assertTrue(is_site_url("https://espace-des-marques.com/fr/1/x"))
        self.assertFalse(is_site_url("https://espace-des-marques.com.evil.test/fr/1/x"))
        self.assertFalse(is_site_url("ftp://www.espace-des-marques.com/fr/1/x"))


class TestEspaceDesMarquesSource(unittest.TestCase):
    def test_fetch_snapshot_parses_ok_response(self) -> None:
        client = Mock()
        client.fetch_text.return_value = FetchResult(url=URL, status_code=200, ok=True, text=PRODUCT_HTML, error=None, elapsed_ms=5)

        snap = EspaceDesMarquesSource(client).fetch_snapshot(URL)

        client.fetch_text.assert_called_once_with(URL)
        self.assertEqual(snap.title, "Veste de ski noire")

    def test_fetch_snapshot_raises_on_http_error(self) -> None:
        client = Mock()
        client.fetch_text.return_value = FetchResult(url=URL, status_code=503, ok=False, text=None, error="HTTP 503", elapsed_ms=5)

        with self.assertRaises(FetchError) as ctx:
            EspaceDesMarquesSource(client).fetch_snapshot(URL)
        self.assertIn("HTTP 503", str(ctx.exception))

    def test_product_id_and_accepts(self) -> None:
        source = EspaceDesMarquesSource(Mock())
        self.assertEqual(source.product_id(URL), "116527")
        self.assertTrue(source.accepts(URL))
        self.assertFalse(source.accepts("https://example.test/fr/1/x"))


if __name__ == "__main__":
    unittest.main()
