from .native_host import main

main()
