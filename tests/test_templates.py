from chatengine.services.templates import render_template


def test_variables_are_html_escaped():
    out = render_template("<p>{{guest_name}}</p>", {"guest_name": "<script>alert(1)</script>"})
    assert out == "<p>&lt;script&gt;alert(1)&lt;/script&gt;</p>"


def test_triple_braces_render_raw():
    assert render_template("{{{snippet}}}", {"snippet": "<b>fet</b>"}) == "<b>fet</b>"


def test_unknown_variables_render_empty():
    assert render_template("Hej {{nobody}}!", {}) == "Hej !"


def test_conditional_blocks_follow_truthiness():
    template = "A{{#special_requests}} [{{special_requests}}]{{/special_requests}}B"
    assert render_template(template, {"special_requests": "glutenfritt"}) == "A [glutenfritt]B"
    assert render_template(template, {"special_requests": ""}) == "AB"
    assert render_template(template, {}) == "AB"


def test_values_cannot_inject_template_syntax():
    template = "{{guest_name}}{{#secret}}HEMLIGT{{/secret}}"
    out = render_template(template, {"guest_name": "{{#secret}}x{{/secret}}", "secret": ""})
    assert "HEMLIGT" not in out
    assert "{{" not in out


def test_numbers_are_rendered():
    assert render_template("{{party_size}} pers", {"party_size": 4}) == "4 pers"


def test_subject_rendering_without_escaping():
    assert render_template("Bokning: {{name}}", {"name": "Åsa & Olle"}, escape=False) == "Bokning: Åsa & Olle"
