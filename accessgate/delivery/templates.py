"""HTML email templates."""

from __future__ import annotations

from html import escape
from urllib.parse import quote

VERIFY_EMAIL_SUBJECT = "Verify your email"


def verification_link(frontend_url: str, token: str) -> str:
    return f"{frontend_url.rstrip('/')}/verify-email/{quote(token, safe='')}"


def render_verify_email(*, name: str, link: str) -> str:
    """Render the verification email body."""
    safe_name = escape(name)
    safe_link = escape(link, quote=True)
    return f"""
<html>
  <body style="font-family: Arial, sans-serif; background-color: #f9f9f9; padding: 20px;">
    <table align="center" width="600" style="background: #fff; border-radius: 10px; padding: 20px; text-align: center;">
      <tr>
        <td>
          <h2 style="color: #4CAF50;">Welcome, {safe_name}</h2>
          <p style="font-size: 16px; color: #333;">
            Thank you for signing up. Please verify your email by clicking the button below:
          </p>
          <a href="{safe_link}"
             style="display: inline-block; margin: 20px 0; padding: 12px 25px; background: #4CAF50; color: #fff; text-decoration: none; border-radius: 5px;">
            Verify Email
          </a>
          <p style="font-size: 14px; color: #888;">
            If the button doesn't work, copy and paste this link in your browser:
            <br/>
            <a href="{safe_link}">{safe_link}</a>
          </p>
        </td>
      </tr>
    </table>
  </body>
</html>
""".strip()
