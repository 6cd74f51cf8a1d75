import os
from typing import Callable, Dict, Optional

import requests
from dotenv import load_dotenv
from loguru import logger

DEFAULT_BASE_URL = "http://localhost/modframework/public/api/"
DEFAULT_ENDPOINT = "user-management/roles"


class Connection:
    """Профиль API: базовый адрес, токен и HTTP-сессия"""

    def __init__(self, session: Optional[requests.Session] = None,
                 csrf_token_provider: Optional[Callable[[], Optional[str]]] = None):
        load_dotenv()
        self.base_url = os.getenv("GRID_API_BASE_URL", DEFAULT_BASE_URL)
        self.token = os.getenv("GRID_API_TOKEN", "")
        self.default_endpoint = os.getenv("GRID_API_DEFAULT_ENDPOINT", DEFAULT_ENDPOINT)
        timeout = os.getenv("GRID_API_TIMEOUT")
        self.timeout = float(timeout) if timeout else None
        self.csrf_token_provider = csrf_token_provider or (lambda: os.getenv("GRID_CSRF_TOKEN"))
        self.session = session

    def connect(self) -> requests.Session:
        if self.session is None:
            logger.info(f"Открытие HTTP-сессии для {self.base_url}")
            self.session = requests.Session()
        return self.session

    def build_api_url(self, endpoint: str) -> str:
        if endpoint.startswith("http"):
            return endpoint
        return self.base_url + endpoint

    @staticmethod
    def web_route(api_url: str) -> str:
        """Адрес веб-страницы таблицы по адресу её API"""
        return api_url.replace("/api/", "/").split("?")[0]

    def view_url(self, api_url: str, record_id) -> str:
        return f"{self.web_route(api_url)}/{record_id}"

    def edit_url(self, api_url: str, record_id) -> str:
        return f"{self.web_route(api_url)}/edit/{record_id}"

    def headers(self, csrf: bool = False) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"bearer {self.token}",
        }
        if csrf:
            token = self.csrf_token_provider()
            if token is None:
                logger.warning("Не найден CSRF-токен страницы, заголовок будет пустым")
            headers["X-CSRF-TOKEN"] = token or ""
        return headers

    def request(self, method: str, url: str, csrf: bool = False) -> requests.Response:
        session = self.connect()
        logger.debug(f"HTTP запрос: {method} {url}")
        response = session.request(method, url, headers=self.headers(csrf), timeout=self.timeout)
        logger.debug(f"HTTP ответ: {response.status_code} {url}")
        response.raise_for_status()
        return response
