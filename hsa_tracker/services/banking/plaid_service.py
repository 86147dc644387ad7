"""
HSA Bank Linking via Plaid

Lets a user connect the bank that holds their HSA so the current balance
can be pulled instead of typed in.

Flow:
1. create_link_token -> the UI opens Plaid Link with it
2. Plaid Link hands back a public token
3. exchange_public_token -> long-lived access token stored on the profile
4. get_balance whenever the user asks for a refresh
5. remove_item when the user disconnects

DESIGN DECISION: This service never writes to storage. ProfileFlow decides
what to persist; the only profile field a refresh changes is the balance.
"""

import asyncio
from typing import Optional

import plaid
from plaid.api import plaid_api
from plaid.model.accounts_balance_get_request import AccountsBalanceGetRequest
from plaid.model.accounts_balance_get_request_options import AccountsBalanceGetRequestOptions
from plaid.model.country_code import CountryCode
from plaid.model.depository_account_subtype import DepositoryAccountSubtype
from plaid.model.depository_account_subtypes import DepositoryAccountSubtypes
from plaid.model.depository_filter import DepositoryFilter
from plaid.model.item_public_token_exchange_request import ItemPublicTokenExchangeRequest
from plaid.model.item_remove_request import ItemRemoveRequest
from plaid.model.link_token_account_filters import LinkTokenAccountFilters
from plaid.model.link_token_create_request import LinkTokenCreateRequest
from plaid.model.link_token_create_request_user import LinkTokenCreateRequestUser
from plaid.model.products import Products
from tenacity import retry, stop_after_attempt, wait_exponential

from hsa_tracker.config import get_settings


PLAID_ENVIRONMENTS = {
    "sandbox": plaid.Environment.Sandbox,
    "production": plaid.Environment.Production,
}

# Account subtypes an HSA can show up as
HSA_ACCOUNT_SUBTYPES = ["savings", "checking", "hsa"]


class BankLinkError(Exception):
    """Plaid rejected the request or could not be reached."""
    pass


def build_plaid_client(client_id: str, secret: str, env: str) -> plaid_api.PlaidApi:
    configuration = plaid.Configuration(
        host=PLAID_ENVIRONMENTS[env],
        api_key={
            "clientId": client_id,
            "secret": secret,
        },
    )
    return plaid_api.PlaidApi(plaid.ApiClient(configuration))


class PlaidBankService:
    """Wraps the four Plaid calls the app needs."""

    def __init__(self, client: Optional[plaid_api.PlaidApi] = None):
        settings = get_settings().plaid
        self._client_name = settings.client_name
        self._client = client or build_plaid_client(
            settings.client_id,
            settings.secret,
            settings.env,
        )

    async def create_link_token(self, user_id: str) -> str:
        """Short-lived token used to open Plaid Link for this user."""
        request = LinkTokenCreateRequest(
            user=LinkTokenCreateRequestUser(client_user_id=user_id),
            client_name=self._client_name,
            products=[Products("auth")],
            country_codes=[CountryCode("US")],
            language="en",
            account_filters=LinkTokenAccountFilters(
                depository=DepositoryFilter(
                    account_subtypes=DepositoryAccountSubtypes(
                        [DepositoryAccountSubtype(s) for s in HSA_ACCOUNT_SUBTYPES]
                    )
                )
            ),
        )
        try:
            response = await asyncio.to_thread(self._client.link_token_create, request)
        except plaid.ApiException as e:
            raise BankLinkError(f"Could not start bank linking: {e.body}")
        return response["link_token"]

    async def exchange_public_token(self, public_token: str) -> tuple[str, str]:
        """
        Trade the Link public token for a permanent access token.

        Returns:
            (access_token, item_id)
        """
        request = ItemPublicTokenExchangeRequest(public_token=public_token)
        try:
            response = await asyncio.to_thread(self._client.item_public_token_exchange, request)
        except plaid.ApiException as e:
            raise BankLinkError(f"Could not link bank account: {e.body}")
        return response["access_token"], response["item_id"]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def get_balance(
        self,
        access_token: str,
        account_id: Optional[str] = None,
    ) -> float:
        """
        Current balance of the linked account.

        With an account_id, that account's balance; otherwise the first
        account's. Missing accounts or balances read as 0.
        """
        if account_id:
            request = AccountsBalanceGetRequest(
                access_token=access_token,
                options=AccountsBalanceGetRequestOptions(account_ids=[account_id]),
            )
        else:
            request = AccountsBalanceGetRequest(access_token=access_token)

        try:
            response = await asyncio.to_thread(self._client.accounts_balance_get, request)
        except plaid.ApiException as e:
            raise BankLinkError(f"Could not fetch balance: {e.body}")

        accounts = response["accounts"]
        if account_id:
            account = next((a for a in accounts if a["account_id"] == account_id), None)
        else:
            account = accounts[0] if accounts else None

        if account is None:
            return 0.0
        current = account["balances"].get("current")
        return float(current) if current is not None else 0.0

    async def remove_item(self, access_token: str) -> None:
        """Disconnect the bank; the access token stops working."""
        try:
            await asyncio.to_thread(
                self._client.item_remove, ItemRemoveRequest(access_token=access_token)
            )
        except plaid.ApiException as e:
            raise BankLinkError(f"Could not disconnect bank account: {e.body}")
