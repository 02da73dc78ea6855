"""
fliqk -- FastAPI Application
"""

import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

import db
from db_compat import CompatClient, get_client
from store import Store
from ai_engine import AIEngine
from ai_routes import create_ai_router
from auth_routes import create_auth_router
from post_routes import create_post_router
from collection_routes import create_collection_router
from admin_routes import create_admin_router
from i18n import locale_middleware

supabase = get_client()
store = Store(supabase)
engine = AIEngine()


# --- Lifespan ---

@asynccontextmanager
async def lifespan(app: FastAPI):
    print(f"[App] Ready. AI engine {'configured' if engine.api_key else 'missing ANTHROPIC_API_KEY'}.")
    yield
    await engine.close()
    if isinstance(supabase, CompatClient):
        db.close_pool()
    print("[App] Shut down.")


app = FastAPI(title="fliqk", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.middleware("http")(locale_middleware)

app.include_router(create_auth_router(store))
app.include_router(create_post_router(store, engine))
app.include_router(create_collection_router(store))
app.include_router(create_ai_router(engine))
app.include_router(create_admin_router(store))


@app.get("/")
async def root(request: Request):
    return {"app": "fliqk", "status": "ok", "locale": request.state.locale}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
