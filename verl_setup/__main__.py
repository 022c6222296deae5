from verl_setup.cli import main

main()
