import unittest

from graph_power_mcp.orchestrator.summarizer import (
    MAX_BODY_CONTENT,
    strip_html,
    summarize_response,
)


class TestStripHtml(unittest.TestCase):

    def test_removes_tags_scripts_and_entities(self):
        html = (
            "<html><head><style>p {color: red}</style><script>alert('x')</script></head>"
            "<body><p>Hello&nbsp;&amp; welcome</p>\n\n<div>Second   line</div></body></html>"
        )
        self.assertEqual(strip_html(html), "Hello & welcome Second line")

    def test_plain_text_is_unchanged(self):
        self.assertEqual(strip_html("just text"), "just text")


class TestSummarizeResponse(unittest.TestCase):

    def test_long_html_body_is_stripped_and_truncated(self):
        """A body longer than 500 characters becomes bounded plain text."""
        data = {"body": {"content": "<html>" + "a" * 600 + "</html>", "contentType": "html"}}

        result = summarize_response(data)

        body = result["body"]
        self.assertEqual(body["content"], "a" * MAX_BODY_CONTENT + "...")
        self.assertEqual(body["contentType"], "text")
        self.assertTrue(body["_truncated"])

    def test_short_body_is_untouched(self):
        data = {"body": {"content": "x" * 100, "contentType": "html"}}
        self.assertEqual(summarize_response(data), data)

    def test_body_preview_truncated_case_insensitively(self):
        data = {"BodyPreview": "p" * 1500, "bodyPreview": "short"}

        result = summarize_response(data)

        self.assertEqual(result["BodyPreview"], "p" * 1000 + "...")
        self.assertEqual(result["bodyPreview"], "short")

    def test_nested_collection_bodies_are_reduced(self):
        """Message bodies inside a Graph `value` array are reached."""
        data = {
            "@odata.context": "https://graph.microsoft.com/v1.0/$metadata#users('me')/messages",
            "value": [
                {"id": "1", "body": {"contentType": "html", "content": "<p>" + "b" * 800 + "</p>"}},
                {"id": "2", "body": {"contentType": "text", "content": "ok"}},
            ],
        }

        result = summarize_response(data)

        self.assertTrue(result["value"][0]["body"]["_truncated"])
        self.assertLessEqual(len(result["value"][0]["body"]["content"]), MAX_BODY_CONTENT + 3)
        self.assertEqual(result["value"][1]["body"], {"contentType": "text", "content": "ok"})
        self.assertEqual(result["@odata.context"], data["@odata.context"])

    def test_original_is_not_modified(self):
        data = {"body": {"content": "<b>" + "c" * 700 + "</b>", "contentType": "html"}}
        summarize_response(data)
        self.assertEqual(data["body"]["contentType"], "html")

    def test_non_object_body_is_left_alone(self):
        data = {"body": "<p>" + "d" * 900 + "</p>"}
        self.assertEqual(summarize_response(data), data)


if __name__ == '__main__':
    unittest.main()
