"""Test vectors for secp256k1, BIP-340 and Bech32 key encoding."""

# Generator x coordinate: public key of private key 1
PRIVATE_KEY_ONE_HEX = "0000000000000000000000000000000000000000000000000000000000000001"
PUBLIC_KEY_ONE_HEX = "79be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"

# BIP-340 test vector 0
BIP340_SECRET_KEY_HEX = "0000000000000000000000000000000000000000000000000000000000000003"
BIP340_PUBLIC_KEY_HEX = "f9308a019258c31049344f85f89d5229b531c845836f99b08601f113bce036f9"
BIP340_AUX_RAND_HEX = "0000000000000000000000000000000000000000000000000000000000000000"
BIP340_MESSAGE_HEX = "0000000000000000000000000000000000000000000000000000000000000000"
BIP340_SIGNATURE_HEX = (
    "e907831f80848d1069a5371b402410364bdf1c5f8307b0084c55f1ce2dca8215"
    "25f66a4a85ea8b71e482a74f382d2ce5ebeee8fdb2172f477df4900d310536c0"
)

# x coordinate >= field prime, never a valid public key
INVALID_PUBLIC_KEY_HEX = "ff" * 32

# NIP-19 examples
NPUB_HEX = "7e7e9c42a91bfef19fa929e5fda1b72e0ebc1a4c1141673e2794234d86addf4e"
NPUB = "npub10elfcs4fr0l0r8af98jlmgdh9c8tcxjvz9qkw038js35mp4dma8qzvjptg"
NSEC_HEX = "67dea2ed018072d675f5415ecfaed7d2597555e202d85b3d65ea4e58d2d92ffa"
NSEC = "nsec1vl029mgpspedva04g90vltkh6fvh240zqtv9k0t9af8935ke9laqsnlfe5"

# Fixed timestamp used by event tests
CREATED_AT = 1700000000

# Contents covering escaping and multi-byte edge cases
TEST_CONTENTS = {
    "empty": "",
    "ascii": "hello",
    "quotes": 'she said "hi"',
    "backslash": "C:\\path\\file",
    "newlines": "Line 1\nLine 2\r\nLine 3",
    "tab": "a\tb",
    "control": "bell\x07 and nul\x00",
    "emoji": "Hello \U0001F44B World \U0001F30D",
    "chinese": "\u4f60\u597d\u4e16\u754c",
    "accents": "Caf\u00e9 r\u00e9sum\u00e9 na\u00efve",
    "json": '{"key": "value", "num": 42}',
    "del_char": "del\x7fchar",
}
