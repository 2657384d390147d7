from wg_negotiator.main import main

main()
