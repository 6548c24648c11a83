"""
Integration tests for SmartPark

End-to-end booking scenarios run through ParkingService against both
persistence gateways, plus the command-line entry point.
"""
