"""
tradesim - Financial Simulation Core

Tax lots, wash sales, IPO allocation and order execution for an educational
trading simulator.

Usage:
    from datetime import datetime, timedelta
    from tradesim import Bookkeeper, Quote, Side, OrderType

    book = Bookkeeper(initial_time=datetime(2024, 1, 2, 9, 30))
    result = book.submit_order("AAPL", Side.BUY, OrderType.LIMIT, 10, limit_price=190)

    # The tick driver presents pending orders to the market...
    book.process_quote("AAPL", Quote(bid=189.90, ask=189.95, last_price=189.92))

    # ...and fills land once the simulated latency has elapsed
    book.advance_time(book.current_time + timedelta(seconds=1))
    book.get_position("AAPL")
"""

# Core types
from .core import (
    Side,
    OrderType,
    OrderStatus,
    CostBasisMethod,
    TimeOfDay,
    IPOStatus,
    IOIStatus,
    TaxLot,
    Order,
    Trade,
    RealizedGains,
    Position,
    ActionResult,
    RandomSource,
    SimulationError,
    InsufficientSharesError,
    InvalidStateError,
    OrderNotFound,
    OfferingNotFound,
    INITIAL_CASH,
    LONG_TERM_HOLDING_DAYS,
    WASH_SALE_WINDOW_DAYS,
    LOCK_UP_DAYS,
    IOI_MIN_SHARES,
    IOI_MAX_SHARES,
    QUANTITY_EPSILON,
    holding_days,
    is_long_term,
)

# Tax lots
from .lots import (
    LotLedger,
    LotMatch,
    order_lots,
    select_lots,
)

# Wash sales
from .wash_sale import (
    WashSaleResult,
    check_wash_sale,
    split_disallowance,
    pick_replacement_lot,
)

# Quotes and execution
from .quotes import (
    Quote,
    QuoteSource,
    StaticQuoteSource,
    generate_quote,
)
from .execution import (
    SlippageBreakdown,
    ExecutionResult,
    RoundTripCost,
    SlippageImpact,
    calculate_slippage,
    simulate_execution,
    calculate_round_trip_cost,
    demonstrate_slippage_impact,
)
from .fills import (
    ScheduledFill,
    FillQueue,
)

# IPO
from .ipo import (
    PriceRange,
    Financials,
    RiskFactor,
    IPOOffering,
    IndicationOfInterest,
    DemandResult,
    AllocationResult,
    OpeningTrade,
    IPOPosition,
    EntryComparison,
    simulate_demand,
    calculate_final_price,
    calculate_allocation,
    simulate_opening_trade,
    calculate_risk_score,
    compare_entry_strategies,
    lock_up_expiry,
)

# Tax estimates
from .tax import (
    RealizedSale,
    TaxLiability,
    TaxSummary,
    StrategyComparison,
    calculate_tax_liability,
    generate_tax_summary,
    compare_strategies,
)

# Progression
from .progression import (
    Unlocks,
    Progression,
    evaluate_unlocks,
    gain_percent,
)

# Bookkeeper
from .bookkeeper import Bookkeeper


__all__ = [
    # Enums
    'Side', 'OrderType', 'OrderStatus', 'CostBasisMethod', 'TimeOfDay',
    'IPOStatus', 'IOIStatus',
    # Core types
    'TaxLot', 'Order', 'Trade', 'RealizedGains', 'Position', 'ActionResult',
    'RandomSource',
    # Exceptions
    'SimulationError', 'InsufficientSharesError', 'InvalidStateError',
    'OrderNotFound', 'OfferingNotFound',
    # Constants
    'INITIAL_CASH', 'LONG_TERM_HOLDING_DAYS', 'WASH_SALE_WINDOW_DAYS',
    'LOCK_UP_DAYS', 'IOI_MIN_SHARES', 'IOI_MAX_SHARES', 'QUANTITY_EPSILON',
    'holding_days', 'is_long_term',
    # Tax lots
    'LotLedger', 'LotMatch', 'order_lots', 'select_lots',
    # Wash sales
    'WashSaleResult', 'check_wash_sale', 'split_disallowance', 'pick_replacement_lot',
    # Quotes and execution
    'Quote', 'QuoteSource', 'StaticQuoteSource', 'generate_quote',
    'SlippageBreakdown', 'ExecutionResult', 'RoundTripCost', 'SlippageImpact',
    'calculate_slippage', 'simulate_execution', 'calculate_round_trip_cost',
    'demonstrate_slippage_impact',
    'ScheduledFill', 'FillQueue',
    # IPO
    'PriceRange', 'Financials', 'RiskFactor', 'IPOOffering', 'IndicationOfInterest',
    'DemandResult', 'AllocationResult', 'OpeningTrade', 'IPOPosition', 'EntryComparison',
    'simulate_demand', 'calculate_final_price', 'calculate_allocation',
    'simulate_opening_trade', 'calculate_risk_score', 'compare_entry_strategies',
    'lock_up_expiry',
    # Tax estimates
    'RealizedSale', 'TaxLiability', 'TaxSummary', 'StrategyComparison',
    'calculate_tax_liability', 'generate_tax_summary', 'compare_strategies',
    # Progression
    'Unlocks', 'Progression', 'evaluate_unlocks', 'gain_percent',
    # Bookkeeper
    'Bookkeeper',
]

__version__ = '1.0.0'
