# quotegate/dependencies.py
# One QuoteService / AICompletionClient per process, built in the app lifespan and
# handed to routes through FastAPI dependencies (tests override these).

from fastapi import Request

from quotegate.ai_client import AICompletionClient
from quotegate.quotes import QuoteService


def get_quote_service(request: Request) -> QuoteService:
    return request.app.state.quote_service


def get_ai_client(request: Request) -> AICompletionClient:
    return request.app.state.ai_client
