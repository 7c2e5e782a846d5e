import json

from bs4 import BeautifulSoup

from marketplace_scrape.parser_generic import (DEFAULT_PROFILE, attribute_blobs, embedded_states,
                                               extract_generic, extract_ld_json, find_product_node)

from .conftest import PRODUCT_HTML


class TestTreeWalk:

    def test_finds_deeply_nested_product(self):
        product = {"title": "Cafeteira Elétrica 110V", "price": {"bestPrice": "199.90"},
                   "image": "https://img.example.com/cafeteira.jpg"}
        payload = {"props": {"pageProps": {"data": {"menu": [{"name": "Casa"}], "product": product}}}}
        assert find_product_node(payload) is product

    def test_best_partial_match_when_nothing_is_complete(self):
        partial = {"name": "Cafeteira Elétrica 110V", "price": 199.9}
        payload = {"breadcrumbs": [{"name": "Casa"}], "item": partial}
        assert find_product_node(payload) is partial

    def test_name_alone_is_not_enough(self):
        assert find_product_node({"a": {"name": "Casa"}, "b": [1, 2, 3]}) is None

    def test_shared_subtrees_are_visited_once(self):
        shared = {"name": "x"}
        payload = {"a": shared, "b": shared, "c": [shared] * 50}
        assert find_product_node(payload) is None

    def test_candidate_from_node(self):
        node = {"name": "Cafeteira", "price": "R$ 199,90", "images": [{"url": "https://img/x.jpg"}],
                "rating": {"ratingValue": 4.5}, "stock": 0}
        cand = DEFAULT_PROFILE.to_candidate(node)
        assert cand["price"] == 199.9
        assert cand["image_url"] == "https://img/x.jpg"
        assert cand["rating"] == 4.5
        assert cand["in_stock"] is False


class TestDocumentTiers:

    def test_json_ld_graph(self):
        ld = {"@graph": [{"@type": "BreadcrumbList"},
                         {"@type": ["Product"], "name": "Cafeteira", "image": {"url": "https://img/c.jpg"},
                          "offers": [{"price": "89.90", "availability": "https://schema.org/OutOfStock"}]}]}
        soup = BeautifulSoup(f'<script type="application/ld+json">{json.dumps(ld)}</script>', "lxml")
        out = extract_ld_json(soup)
        assert out["title"] == "Cafeteira"
        assert out["image_url"] == "https://img/c.jpg"
        assert out["price"] == 89.9
        assert out["in_stock"] is False

    def test_window_state_global(self):
        html = ('<script>window.__INITIAL_STATE__ = {"product": {"name": "Panela", "price": 59.9}};'
                'window.other = 1;</script>')
        states = embedded_states(BeautifulSoup(html, "lxml"))
        assert states == [{"product": {"name": "Panela", "price": 59.9}}]

    def test_attribute_blob(self):
        html = """<div data-product='{"title": "Panela", "price": "59.90"}'></div>"""
        blobs = attribute_blobs(BeautifulSoup(html, "lxml"), ["[data-product]@data-product"])
        assert blobs == [{"title": "Panela", "price": "59.90"}]

    def test_embedded_state_wins_over_json_ld(self):
        nd = {"props": {"product": {"name": "Fone TWS Pro Max", "price": 99.0,
                                    "image": "https://img.example.com/pro.jpg"}}}
        html = PRODUCT_HTML.replace(
            "</head>", f'<script id="__NEXT_DATA__" type="application/json">{json.dumps(nd)}</script></head>')
        out = extract_generic(html)
        assert out["title"] == "Fone TWS Pro Max"
        assert out["price"] == 99.0
        # gaps are still filled from JSON-LD
        assert out["rating"] == 4.7
        assert out["review_count"] == 1234

    def test_meta_fallback(self):
        html = """<html><head>
        <meta property="og:title" content="Panela de Pressão 4,5L">
        <meta property="og:image" content="https://img.example.com/panela.jpg">
        <meta property="product:price:amount" content="129.90">
        </head></html>"""
        out = extract_generic(html)
        assert out["title"] == "Panela de Pressão 4,5L"
        assert out["image_url"] == "https://img.example.com/panela.jpg"
        assert out["price"] == 129.9
