from .client_creator import (
    ALICE, BOB, CAROL, CHARITY, FIXED_TIME, TEST_APP_URL, TEST_CONTRACT, TEST_GATEWAY, TEST_JWT,
    TEST_MIRROR, TEST_PINNER_URL, TEST_PRIV_KEY, TEST_RPC_URL, TEST_TOKEN, create_test_client, make_cid
)
