"""TVL snapshots for the MetaDAO futarchy AMM and DAO treasuries on Solana."""
