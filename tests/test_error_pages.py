"""
Tests for curator/error_pages.py

Run with: pytest tests/test_error_pages.py
"""

from curator.error_pages import find_error_signal, is_error_page, missing_article_body


class TestIsErrorPage:
    def test_generic_phrase(self):
        html = "<html><body><h1>Page Not Found</h1></body></html>"
        assert is_error_page(html, "https://site.com/x") is True
        assert find_error_signal(html, "https://site.com/x") == "generic pattern: page not found"

    def test_title_keyword(self):
        html = "<html><head><title>404 - Missing</title></head><body>Hi</body></html>"
        assert find_error_signal(html, "https://site.com/x") == "error keyword in title tag"

    def test_title_spanning_lines(self):
        html = "<title>\n  Something\n  Unavailable\n</title>"
        assert is_error_page(html, "https://site.com/x") is True

    def test_clean_page(self):
        html = "<html><head><title>Welcome</title></head><body><p>Hello</p></body></html>"
        assert is_error_page(html, "https://site.com/") is False
        assert find_error_signal(html, "https://site.com/") is None

    def test_domain_phrase_checked_first(self):
        html = "<title>Error</title><p>Sign in to continue reading</p>"
        signal = find_error_signal(html, "https://hbr.org/2024/01/some-article")
        assert signal == "hbr.org pattern: sign in to continue reading"

    def test_domain_phrase_ignored_for_other_sites(self):
        html = "<p>Subscribe to continue reading</p>"
        assert is_error_page(html, "https://blog.site.com/post") is False

    def test_nature_withdrawn_article(self):
        html = "<p>This article has been withdrawn by the authors.</p>"
        assert find_error_signal(html, "https://www.nature.com/articles/x") == (
            "nature.com pattern: article has been withdrawn"
        )

    def test_case_insensitive(self):
        assert is_error_page("<p>OOPS! We lost it.</p>", "https://site.com/") is True


class TestMissingArticleBody:
    def test_marker_publisher_without_body(self):
        html = "<html><body><div class='promo'>Subscribe</div></body></html>"
        assert missing_article_body(html, "https://www.forbes.com/sites/x") is True

    def test_marker_publisher_with_body(self):
        html = '<div class="article-body"><p>Text</p></div>'
        assert missing_article_body(html, "https://www.forbes.com/sites/x") is False

    def test_other_publishers_not_checked(self):
        assert missing_article_body("<p>short</p>", "https://site.com/post") is False
