"""Infrastructure Layer: Contains concrete implementations and adapters.

Connects the application to the outside world (CloudCode API, accounts file,
sessions, disk cache, console) by implementing the interfaces defined in the
domain layer. Also holds the account scheduler and the request executor.
"""
