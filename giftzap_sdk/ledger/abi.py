"""
Contract ABIs used by the web3 ledger client.
"""
from web3 import Web3

GIFT_MANAGER_ABI = [
    {
        "inputs": [],
        "name": "giftCounter",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "name": "gifts",
        "outputs": [
            {"internalType": "address", "name": "sender", "type": "address"},
            {"internalType": "address", "name": "recipient", "type": "address"},
            {"internalType": "uint256", "name": "amount", "type": "uint256"},
            {"internalType": "bytes32", "name": "giftTypeHash", "type": "bytes32"},
            {"internalType": "bytes32", "name": "messageHash", "type": "bytes32"},
            {"internalType": "bool", "name": "isCharity", "type": "bool"},
            {"internalType": "bool", "name": "redeemed", "type": "bool"},
            {"internalType": "uint256", "name": "timestamp", "type": "uint256"}
        ],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "getCharities",
        "outputs": [
            {"internalType": "uint256[]", "name": "ids", "type": "uint256[]"},
            {"internalType": "address[]", "name": "addresses", "type": "address[]"},
            {"internalType": "bytes32[]", "name": "names", "type": "bytes32[]"},
            {"internalType": "bytes32[]", "name": "descriptions", "type": "bytes32[]"}
        ],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "getAllActiveCharities",
        "outputs": [{"internalType": "uint256[]", "name": "", "type": "uint256[]"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [{"internalType": "uint256", "name": "charityId", "type": "uint256"}],
        "name": "getCharity",
        "outputs": [
            {"internalType": "address", "name": "charityAddress", "type": "address"},
            {"internalType": "string", "name": "name", "type": "string"},
            {"internalType": "string", "name": "metadataURI", "type": "string"},
            {"internalType": "bool", "name": "active", "type": "bool"}
        ],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [{"internalType": "address", "name": "user", "type": "address"}],
        "name": "getFavorites",
        "outputs": [
            {"internalType": "address[]", "name": "recipients", "type": "address[]"},
            {"internalType": "bytes32[]", "name": "names", "type": "bytes32[]"},
            {"internalType": "uint256[]", "name": "giftCounts", "type": "uint256[]"},
            {"internalType": "uint256[]", "name": "totalAmounts", "type": "uint256[]"}
        ],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "getTopGifters",
        "outputs": [
            {"internalType": "address[]", "name": "addresses", "type": "address[]"},
            {"internalType": "uint256[]", "name": "counts", "type": "uint256[]"}
        ],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [
            {"internalType": "address", "name": "recipient", "type": "address"},
            {"internalType": "uint256", "name": "amount", "type": "uint256"},
            {"internalType": "bytes32", "name": "giftTypeHash", "type": "bytes32"},
            {"internalType": "bytes32", "name": "messageHash", "type": "bytes32"},
            {"internalType": "bool", "name": "isCharity", "type": "bool"}
        ],
        "name": "sendGift",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [{"internalType": "uint256", "name": "giftId", "type": "uint256"}],
        "name": "redeemGift",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [
            {"internalType": "address", "name": "recipient", "type": "address"},
            {"internalType": "bytes32", "name": "name", "type": "bytes32"}
        ],
        "name": "addFavorite",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "owner",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [
            {"internalType": "address", "name": "charityAddress", "type": "address"},
            {"internalType": "string", "name": "name", "type": "string"},
            {"internalType": "string", "name": "metadataURI", "type": "string"}
        ],
        "name": "addCharity",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [{"internalType": "uint256", "name": "charityId", "type": "uint256"}],
        "name": "removeCharity",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "internalType": "uint256", "name": "giftId", "type": "uint256"},
            {"indexed": True, "internalType": "address", "name": "sender", "type": "address"},
            {"indexed": True, "internalType": "address", "name": "recipient", "type": "address"},
            {"indexed": False, "internalType": "uint256", "name": "amount", "type": "uint256"},
            {"indexed": False, "internalType": "bool", "name": "isCharity", "type": "bool"}
        ],
        "name": "GiftSent",
        "type": "event"
    }
]

# Minimal ERC-20 surface: balances, allowance checks and approvals
ERC20_ABI = [
    {
        "constant": True,
        "inputs": [
            {"name": "_owner", "type": "address"},
            {"name": "_spender", "type": "address"}
        ],
        "name": "allowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function"
    },
    {
        "constant": False,
        "inputs": [
            {"name": "_spender", "type": "address"},
            {"name": "_value", "type": "uint256"}
        ],
        "name": "approve",
        "outputs": [{"name": "", "type": "bool"}],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "type": "function"
    }
]

# Assumed layout: the gift id is the first indexed topic. Receipts that do not
# match leave the sent gift with its provisional id.
GIFT_SENT_SIGNATURE = "GiftSent(uint256,address,address,uint256,bool)"
GIFT_SENT_TOPIC = Web3.to_hex(Web3.keccak(text=GIFT_SENT_SIGNATURE))
