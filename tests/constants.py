TREASURY_WALLET = "SysvarRent111111111111111111111111111111111"
PAYER_WALLET = "SysvarC1ock11111111111111111111111111111111"
OTHER_WALLET = "SysvarS1otHashes111111111111111111111111111"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
OTHER_MINT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"
