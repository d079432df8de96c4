from html import escape
from string import Template

WELCOME = "welcome"
NEW_FOLLOWER = "new-follower"

_HTML_TEMPLATES = {
    WELCOME: Template(
        "<h1>Welcome, $username!</h1>"
        "<p>Thanks for joining the blog. Start writing and following authors you like.</p>"
        '<p><a href="$loginUrl">Log in to your account</a></p>'
    ),
    NEW_FOLLOWER: Template(
        "<p>Hi $authorName,</p>"
        "<p><strong>$followerName</strong> is now following you.</p>"
        '<p><a href="$profileUrl">View their profile</a></p>'
    ),
}

_TEXT_TEMPLATES = {
    WELCOME: Template(
        "Welcome, $username!\n\n"
        "Thanks for joining the blog. Log in at $loginUrl\n"
    ),
    NEW_FOLLOWER: Template(
        "Hi $authorName,\n\n$followerName is now following you.\nProfile: $profileUrl\n"
    ),
}


def render(template: str, variables: dict[str, str]) -> tuple[str, str]:
    """Return ``(html, text)`` for *template*; unknown names raise KeyError."""
    html_body = _HTML_TEMPLATES[template].substitute(
        {key: escape(str(value)) for key, value in variables.items()}
    )
    text_body = _TEXT_TEMPLATES[template].substitute(
        {key: str(value) for key, value in variables.items()}
    )
    return html_body, text_body
