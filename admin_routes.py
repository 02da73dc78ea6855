"""
Admin -- invite tokens, users, device resets.

Every admin request re-reads the caller's role from the database; the
session cookie alone never grants admin access.
"""

from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import BaseModel

from session import get_session
from store import Store


class TokenCreate(BaseModel):
    grants_role: str = "tester"


# ============================================================
# HTML Helpers
# ============================================================

_CSS = """
* { box-sizing: border-box; margin: 0; padding: 0; }
body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
       background: #f5f5f5; color: #222; line-height: 1.5; }
nav { background: #1e1b4b; padding: 12px 24px; display: flex; gap: 24px; align-items: center; }
nav a { color: #e0e7ff; font-weight: 600; font-size: 15px; text-decoration: none; }
nav .brand { color: #a78bfa; font-size: 18px; font-weight: 700; margin-right: auto; }
.container { max-width: 1100px; margin: 24px auto; padding: 0 16px; }
.card { background: #fff; border: 1px solid #e2e8f0; border-radius: 8px; padding: 20px; margin-bottom: 16px; }
.card h2 { margin-bottom: 12px; font-size: 18px; color: #1e1b4b; border-bottom: 2px solid #e2e8f0; padding-bottom: 8px; }
.msg-ok { background: #dcfce7; color: #166534; padding: 10px 16px; border-radius: 6px; margin-bottom: 16px; }
.msg-err { background: #fee2e2; color: #991b1b; padding: 10px 16px; border-radius: 6px; margin-bottom: 16px; }
.stats { display: grid; grid-template-columns: repeat(4, 1fr); gap: 16px; margin-bottom: 16px; }
.stat { background: #fff; border: 1px solid #e2e8f0; border-radius: 8px; padding: 16px; text-align: center; }
.stat .num { font-size: 28px; font-weight: 700; color: #8B5CF6; }
.stat .label { color: #64748b; font-size: 13px; }
table { width: 100%; border-collapse: collapse; font-size: 14px; }
th { text-align: left; padding: 8px 10px; background: #f8fafc; border-bottom: 2px solid #e2e8f0; font-weight: 600; color: #475569; font-size: 12px; text-transform: uppercase; }
td { padding: 8px 10px; border-bottom: 1px solid #f1f5f9; vertical-align: top; }
code { background: #f1f5f9; padding: 2px 6px; border-radius: 4px; font-size: 14px; }
button { cursor: pointer; padding: 6px 14px; border-radius: 6px; border: 1px solid #d1d5db;
         background: #fff; font-size: 13px; font-weight: 500; }
.btn-primary { background: #8B5CF6; color: #fff; border-color: #8B5CF6; }
.btn-danger { color: #dc2626; border-color: #fca5a5; }
.btn-sm { padding: 3px 10px; font-size: 12px; }
.inline-form { display: inline-block; margin: 0 4px; }
select { padding: 6px 10px; border: 1px solid #d1d5db; border-radius: 6px; font-size: 13px; }
.used { color: #94a3b8; }
.role-admin { color: #8B5CF6; font-weight: 700; }
.role-tester { color: #0891b2; font-weight: 600; }
"""


def _page(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{title} - fliqk</title>
<style>{_CSS}</style>
</head>
<body>
<nav><span class="brand">fliqk</span><a href="/admin">Admin</a><a href="/">App &#10132;</a></nav>
<div class="container">
{body}
</div>
</body>
</html>"""


def _messages(message: Optional[str], error: Optional[str] = None) -> str:
    parts = []
    if message:
        parts.append(f'<div class="msg-ok">{_esc(message)}</div>')
    if error:
        parts.append(f'<div class="msg-err">{_esc(error)}</div>')
    return "".join(parts)


def _esc(s) -> str:
    """Basic HTML escaping."""
    return str(s or "").replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;").replace('"', "&quot;")


def _users_table(users: list) -> str:
    rows = ""
    for u in users:
        role = _esc(u.get("role"))
        device = _esc((u.get("device_id") or "")[:12]) or '<span class="used">none</span>'
        reset = ""
        if u.get("device_id"):
            reset = f"""<form class="inline-form" method="post" action="/admin/users/{_esc(u['id'])}/reset-device">
                <button class="btn-sm">Reset device</button></form>"""
        rows += f"""<tr><td>{_esc(u.get('nickname'))}</td><td class="role-{role}">{role}</td>
            <td>{u.get('links_count', 0)}</td><td>{device} {reset}</td>
            <td>{_esc((u.get('created_at') or '')[:10])}</td></tr>"""
    if not rows:
        rows = '<tr><td colspan="5" class="used">No users yet</td></tr>'
    return f"<table><tr><th>Nickname</th><th>Role</th><th>Links</th><th>Device</th><th>Joined</th></tr>{rows}</table>"


def _tokens_table(tokens: list) -> str:
    rows = ""
    for t in tokens:
        if t.get("used"):
            status = f'<span class="used">used by {_esc(t.get("user_nickname") or "?")}</span>'
        else:
            status = "available"
        rows += f"""<tr><td><code>{_esc(t.get('token'))}</code></td><td>{_esc(t.get('grants_role'))}</td>
            <td>{status}</td><td>{_esc((t.get('created_at') or '')[:10])}</td>
            <td><form class="inline-form" method="post" action="/admin/tokens/{_esc(t['id'])}/delete">
                <button class="btn-sm btn-danger">Delete</button></form></td></tr>"""
    if not rows:
        rows = '<tr><td colspan="5" class="used">No tokens yet</td></tr>'
    return f"<table><tr><th>Token</th><th>Role</th><th>Status</th><th>Created</th><th></th></tr>{rows}</table>"


# ============================================================
# Router Factory
# ============================================================

def create_admin_router(store: Store) -> APIRouter:
    router = APIRouter(tags=["admin"])

    def verify_admin(request: Request) -> dict:
        """Current session, only if its user is an admin in the database."""
        session = get_session(request)
        if not session:
            raise HTTPException(401, "Not logged in")
        if store.get_user_role(session["userId"]) != "admin":
            print(f"[Admin] Refused {request.url.path} for {session.get('nickname')}")
            raise HTTPException(403, "Admin only")
        return session

    # --- JSON API ---

    @router.get("/api/admin/overview")
    async def overview(admin: dict = Depends(verify_admin)):
        return store.get_admin_overview()

    @router.post("/api/admin/tokens")
    async def create_token(body: TokenCreate, admin: dict = Depends(verify_admin)):
        try:
            token = store.create_invite_token(body.grants_role)
        except ValueError as e:
            raise HTTPException(400, str(e))
        print(f"[Admin] {admin['nickname']} created {token.get('grants_role')} token")
        return {"token": token}

    @router.delete("/api/admin/tokens/{token_id}")
    async def delete_token(token_id: str, admin: dict = Depends(verify_admin)):
        if not store.delete_invite_token(token_id):
            raise HTTPException(404, "Token not found")
        return {"success": True}

    @router.post("/api/admin/users/{user_id}/reset-device")
    async def reset_device(user_id: str, admin: dict = Depends(verify_admin)):
        if not store.reset_user_device_id(user_id):
            raise HTTPException(404, "User not found")
        print(f"[Admin] {admin['nickname']} reset device for {user_id}")
        return {"success": True}

    # --- HTML dashboard ---

    @router.get("/admin", response_class=HTMLResponse)
    async def admin_dashboard(message: Optional[str] = None, error: Optional[str] = None,
                              admin: dict = Depends(verify_admin)):
        data = store.get_admin_overview()
        stats = data["stats"]
        stat_html = "".join(
            f'<div class="stat"><div class="num">{value}</div><div class="label">{label}</div></div>'
            for label, value in (
                ("Users", stats["totalUsers"]),
                ("Testers", stats["totalTesters"]),
                ("Links", stats["totalLinks"]),
                ("Clicks", stats["totalClicks"]),
            )
        )
        body = f"""{_messages(message, error)}
<div class="stats">{stat_html}</div>
<div class="card">
  <h2>Invite tokens</h2>
  <form method="post" action="/admin/tokens" style="margin-bottom:12px">
    <select name="grants_role"><option value="tester">tester</option><option value="user">user</option></select>
    <button class="btn-primary">Generate token</button>
  </form>
  {_tokens_table(data["tokens"])}
</div>
<div class="card">
  <h2>Users</h2>
  {_users_table(data["users"])}
</div>"""
        return _page("Admin", body)

    @router.post("/admin/tokens")
    async def admin_create_token(grants_role: str = Form("tester"), admin: dict = Depends(verify_admin)):
        try:
            token = store.create_invite_token(grants_role)
        except ValueError as e:
            return RedirectResponse(url=f"/admin?error={quote(str(e))}", status_code=303)
        return RedirectResponse(url="/admin?message=" + quote(f"Token {token.get('token')} created"), status_code=303)

    @router.post("/admin/tokens/{token_id}/delete")
    async def admin_delete_token(token_id: str, admin: dict = Depends(verify_admin)):
        store.delete_invite_token(token_id)
        return RedirectResponse(url="/admin?message=Token deleted", status_code=303)

    @router.post("/admin/users/{user_id}/reset-device")
    async def admin_reset_device(user_id: str, admin: dict = Depends(verify_admin)):
        store.reset_user_device_id(user_id)
        return RedirectResponse(url="/admin?message=Device reset", status_code=303)

    return router
