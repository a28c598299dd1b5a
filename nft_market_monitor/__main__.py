from .monitor import main

main()
