"""Minimal HTML pages for browsers hitting the redirect endpoints."""

from html import escape
from typing import Optional

_PAGE = """<!doctype html>
<html lang="ko">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<meta name="robots" content="noindex">
<title>{title}</title>
</head>
<body>
<main>
{body}
</main>
</body>
</html>
"""


def wants_html(accept: Optional[str]) -> bool:
    """True when the client prefers an HTML page over JSON."""
    if not accept:
        return False
    accept = accept.lower()
    if "application/json" in accept and "text/html" not in accept:
        return False
    return "text/html" in accept


def format_won(amount: int) -> str:
    return f"{amount:,}원"


def render_confirm_page(
    offer_id: str, old_price: int, new_price: int, confirm_url: str, confirm_token: str
) -> str:
    direction = "내려갔습니다" if new_price < old_price else "올랐습니다"
    body = (
        "<h1>가격이 변경되었습니다</h1>\n"
        f"<p>표시된 가격 <s>{escape(format_won(old_price))}</s> 에서 "
        f"현재 가격 <strong>{escape(format_won(new_price))}</strong> 으로 {direction}.</p>\n"
        f'<form method="post" action="{escape(confirm_url, quote=True)}">\n'
        f'<input type="hidden" name="confirmToken" value="{escape(confirm_token, quote=True)}">\n'
        f'<input type="hidden" name="offerId" value="{escape(offer_id, quote=True)}">\n'
        '<button type="submit">현재 가격으로 계속하기</button>\n'
        "</form>"
    )
    return _PAGE.format(title="가격 변경 확인", body=body)


def render_error_page(code: str, message: str) -> str:
    body = (
        "<h1>이동할 수 없습니다</h1>\n"
        f"<p>{escape(message)}</p>\n"
        f"<p><small>{escape(code)}</small></p>"
    )
    return _PAGE.format(title="이동할 수 없습니다", body=body)
